import os

from prorentals import create_app
from prorentals.config import DevConfig, ProdConfig

# Hosted deployments export one of these; local runs fall back to DevConfig.
PRODUCTION_MARKERS = ("RAILWAY_ENVIRONMENT", "RAILWAY_SERVICE_ID")


def _is_production() -> bool:
    if os.getenv("APP_ENV", "").strip().lower() == "production":
        return True
    return any(os.getenv(marker) for marker in PRODUCTION_MARKERS)


app = create_app(ProdConfig if _is_production() else DevConfig)

if __name__ == "__main__":
    app.run()
