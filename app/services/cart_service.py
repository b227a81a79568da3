import logging
from datetime import datetime
from typing import Iterable

from sqlmodel import Session, select

from app.models.book import Book
from app.models.cart import Cart, CartItem

logger = logging.getLogger(__name__)


def get_cart(session: Session, user_id: int):
    return session.exec(select(Cart).where(Cart.user_id == user_id)).first()


def get_or_create_cart(session: Session, user_id: int) -> Cart:
    cart = get_cart(session, user_id)
    if cart:
        return cart

    cart = Cart(user_id=user_id)
    session.add(cart)
    session.commit()
    session.refresh(cart)
    return cart


def recalculate_total(session: Session, cart: Cart) -> float:
    """Price every line at the book's current price. Free books count as zero."""
    total = 0.0
    for item in cart.items:
        book = session.get(Book, item.book_id)
        if book:
            total += book.effective_price * item.quantity

    cart.total_amount = round(total, 2)
    cart.last_updated = datetime.utcnow()
    return cart.total_amount


def save_cart(session: Session, cart: Cart) -> Cart:
    recalculate_total(session, cart)
    session.add(cart)
    session.commit()
    session.refresh(cart)
    return cart


def remove_books_from_cart(session: Session, user_id: int, book_ids: Iterable[int]) -> int:
    """Drop purchased books from the user's cart. Safe to call repeatedly."""
    ids = {int(b) for b in book_ids if b is not None}
    if not ids:
        return 0

    cart = get_cart(session, user_id)
    if not cart or not cart.items:
        return 0

    purchased = [item for item in cart.items if item.book_id in ids]
    for item in purchased:
        cart.items.remove(item)

    if purchased:
        save_cart(session, cart)
        logger.info(f"Removed {len(purchased)} purchased books from cart of user {user_id}, {len(cart.items)} items left")

    return len(purchased)


def remove_book_from_all_carts(session: Session, book_id: int) -> int:
    """Drop a book from every cart holding it and reprice those carts. Caller commits."""
    items = session.exec(select(CartItem).where(CartItem.book_id == book_id)).all()
    for item in items:
        cart = item.cart
        cart.items.remove(item)
        recalculate_total(session, cart)
        session.add(cart)

    if items:
        logger.info(f"Removed book {book_id} from {len(items)} carts")
    return len(items)
