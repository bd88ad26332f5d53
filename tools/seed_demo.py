# tools/seed_demo.py
from __future__ import annotations

from prep_recipe_core.db.database import get_db_session, init_db
from prep_recipe_core.db.models import Ingredient, User, dump_json
from prep_recipe_core.linkage import resolve_prep_item
from prep_recipe_core.recipes import save_recipe_line

COMPANY_ID = "demo-company"


def _get_or_create_ingredient(db, name: str, **fields) -> Ingredient:
    ingredient = (
        db.query(Ingredient)
        .filter(Ingredient.company_id == COMPANY_ID, Ingredient.name == name)
        .first()
    )
    if ingredient is None:
        ingredient = Ingredient(company_id=COMPANY_ID, name=name, **fields)
        db.add(ingredient)
        db.flush()
    return ingredient


def main():
    init_db()

    with get_db_session() as db:
        # 1) Usuario autor
        user = db.query(User).filter(User.email == "chef@demo.local").first()
        if not user:
            user = User(email="chef@demo.local", full_name="Chef Demo")
            db.add(user)
            db.flush()

        # 2) Catálogo: un prep item y sus insumos
        brioche = _get_or_create_ingredient(db, "Brioche Bun", base_unit="each")
        flour = _get_or_create_ingredient(
            db, "Flour", base_unit="g", supplier="Molino Demo", allergens_json=dump_json(["gluten"])
        )
        butter = _get_or_create_ingredient(db, "Butter", base_unit="g", allergens_json=dump_json(["milk"]))

        # 3) Receta placeholder (idempotente)
        result = resolve_prep_item(db, brioche.id, True, user.id)
        print(f"Prep item {brioche.name}: {result.action.value} -> receta {result.recipe_id}")

        # 4) Líneas: la primera genera el documento
        if result.action.value == "created":
            first = save_recipe_line(db, result.recipe_id, flour.id, 500, "g", user_id=user.id)
            save_recipe_line(db, result.recipe_id, butter.id, 120, "g", user_id=user.id)
            print(f"Documento de procedimiento: {first.document_id}")

    print("✅ Seed demo OK")


if __name__ == "__main__":
    main()
