import os

os.environ.setdefault("FINANCE_DATABASE_URL", "sqlite://")
