from stockview.routers.scrape import router as scrape_router
from stockview.routers.accounts import router as accounts_router
from stockview.routers.views import router as views_router
from stockview.routers.credentials import router as credentials_router

__all__ = ["scrape_router", "accounts_router", "views_router", "credentials_router"]
