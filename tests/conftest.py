"""
Fixtures compartidas: base SQLite en memoria (una por test) y catálogo mínimo.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from prep_recipe_core.db.database import init_db
from prep_recipe_core.db.models import Ingredient, Recipe, User, dump_json
from prep_recipe_core.linkage import resolve_prep_item

COMPANY_ID = "company-test"
OTHER_COMPANY_ID = "company-other"


@pytest.fixture
def engine():
    """Engine en memoria; StaticPool comparte la misma base entre conexiones."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def chef(session):
    user = User(email="chef@test.local", full_name="Chef Demo")
    session.add(user)
    session.flush()
    return user


def make_ingredient(session, name, company_id=COMPANY_ID, allergens=None, **fields):
    ingredient = Ingredient(
        company_id=company_id,
        name=name,
        allergens_json=dump_json(allergens or []),
        **fields,
    )
    session.add(ingredient)
    session.flush()
    return ingredient


@pytest.fixture
def brioche(session):
    return make_ingredient(session, "Brioche Bun", base_unit="each")


@pytest.fixture
def flour(session):
    return make_ingredient(session, "Flour", base_unit="g", supplier="Molino Norte", allergens=["gluten"])


@pytest.fixture
def butter(session):
    return make_ingredient(session, "Butter", base_unit="g", allergens=["milk"])


@pytest.fixture
def lecithin(session):
    return make_ingredient(session, "Lecithin", base_unit="g", allergens=["Gluten", "soy"])


@pytest.fixture
def prep_recipe(session, brioche, chef) -> Recipe:
    """Receta placeholder (draft, sin líneas) del prep item Brioche Bun."""
    result = resolve_prep_item(session, brioche.id, True, chef.id)
    return session.get(Recipe, result.recipe_id)
