import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import create_db_and_tables
from app.routes import (
    auth,
    books,
    cart,
    chapters,
    health,
    payments,
    purchases,
    user_library,
    webhooks,
    wishlist,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.env == "local":
        create_db_and_tables()
    yield

app = FastAPI(title="ChapterOne API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(books.router, prefix="/api/books", tags=["Books"])
app.include_router(chapters.router, prefix="/api/chapters", tags=["Chapters"])
app.include_router(cart.router, prefix="/api/cart", tags=["Cart"])
app.include_router(wishlist.router, prefix="/api/wishlist", tags=["Wishlist"])
app.include_router(user_library.router, prefix="/api/library", tags=["Library"])
app.include_router(purchases.router, prefix="/api/purchases", tags=["Purchases"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["Webhooks"])
app.include_router(health.router, prefix="/api/health", tags=["Health"])


@app.get("/")
def root():
    return {
        "auth": [
            "/api/auth/register", "/api/auth/login", "/api/auth/me"
        ],
        "books": [
            "/api/books/{id_or_slug}", "/api/books/{book_id}/chapters", "/api/chapters/{chapter_id}"
        ],
        "payments": [
            "/api/payments/checkout", "/api/payments/verify/{reference}"
        ],
        "webhooks": [
            "/api/webhooks/nomba", "/api/webhooks/paystack"
        ],
        "cart": [
            "/api/cart", "/api/cart/add/{book_id}", "/api/cart/update/{book_id}",
            "/api/cart/remove/{book_id}", "/api/cart/clear", "/api/cart/summary"
        ],
        "library": [
            "/api/library", "/api/library/{book_id}", "/api/library/{book_id}/progress"
        ],
        "wishlist": [
            "/api/wishlist", "/api/wishlist/{book_id}", "/api/wishlist/status/{book_id}"
        ],
        "purchases": [
            "/api/purchases/my", "/api/purchases/check/{book_id}"
        ]
    }
