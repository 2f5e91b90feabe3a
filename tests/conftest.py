import os

os.environ.setdefault("WALLET_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("WALLET_TIMEZONE", "UTC")
os.environ.setdefault("WALLET_DEFAULT_CURRENCY", "SGD")
os.environ.setdefault("WALLET_CATEGORY_MATCH", "exact")
os.environ.setdefault("WALLET_MAIL_SYNC_MINUTES", "0")
