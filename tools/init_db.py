from prep_recipe_core.db.database import get_db_engine, init_db


def main():
    # init_db registra los modelos ANTES de create_all
    engine = get_db_engine(echo=False)
    init_db(engine)
    print("✅ DB creada/verificada usando DATABASE_URL.")


if __name__ == "__main__":
    main()
