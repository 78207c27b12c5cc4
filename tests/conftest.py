import os

# main.py creates tables on import; keep that off disk
os.environ.setdefault("DATABASE_URL", "sqlite://")
