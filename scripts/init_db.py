from voicesched.db.session import engine, create_tables

def init_db():
    if engine is None:
        raise SystemExit("DATABASE_URL not configured")
    print("Initializing database...")
    create_tables(engine)
    print("Database tables created successfully!")

if __name__ == "__main__":
    init_db()
