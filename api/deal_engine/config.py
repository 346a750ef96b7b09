import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./deal_engine.db")
SECRET_KEY = os.getenv("SECRET_KEY", "devsecret")
ADMIN_ACCESS_TOKEN = os.getenv("ADMIN_ACCESS_TOKEN")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")

PLATFORM_NAME = os.getenv("PLATFORM_NAME", "AngelVault")
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")

NDA_VERSION = os.getenv("NDA_VERSION", "1.0")
NDA_VALIDITY_YEARS = int(os.getenv("NDA_VALIDITY_YEARS", "2"))

# platform commission on executed SAFE notes, e.g. 0.02 for 2%
COMMISSION_RATE = float(os.getenv("COMMISSION_RATE", "0.02"))
OFFER_TRANSITION_ATTEMPTS = int(os.getenv("OFFER_TRANSITION_ATTEMPTS", "3"))

EMAIL_HOST = os.getenv("EMAIL_HOST", "smtp.gmail.com")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD")
EMAIL_SENDER = os.getenv("EMAIL_SENDER", EMAIL_USER or "noreply@example.com")
EMAIL_SENDER_NAME = os.getenv("EMAIL_SENDER_NAME", f"{PLATFORM_NAME} Deals")
