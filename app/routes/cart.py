from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
from sqlmodel import Session, select
from app.database import get_session
from app.models.book import Book
from app.models.cart import Cart, CartItem
from app.models.user import User
from app.models.user_library import UserLibrary
from app.schemas.cart_schemas import CartAddRequest, CartLine, CartRead, CartUpdateRequest
from app.services.cart_service import get_cart, get_or_create_cart, save_cart
from app.utils.token import get_current_user  # JWT dependency


router = APIRouter()


def serialize_cart(session: Session, cart: Cart) -> CartRead:
    lines = []
    for item in cart.items:
        book = session.get(Book, item.book_id)
        if not book:
            continue
        lines.append(CartLine(
            book_id=book.id,
            title=book.title,
            author=book.author,
            cover_image_url=book.cover_image_url,
            price=book.price,
            is_free=book.is_free,
            quantity=item.quantity,
            added_at=item.added_at,
            total=book.effective_price * item.quantity,
        ))

    return CartRead(
        id=cart.id,
        user_id=cart.user_id,
        items=lines,
        item_count=cart.item_count,
        total_amount=cart.total_amount,
        last_updated=cart.last_updated,
    )


def _find_item(cart: Cart, book_id: int):
    return next((item for item in cart.items if item.book_id == book_id), None)


# View Cart

@router.get("/")
def view_cart(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    cart = get_or_create_cart(session, current_user.id)
    return serialize_cart(session, cart)


@router.get("/summary")
def cart_summary(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    cart = get_cart(session, current_user.id)
    if not cart:
        return {"itemCount": 0, "totalAmount": 0, "items": []}

    data = serialize_cart(session, cart)
    return {
        "itemCount": data.item_count,
        "totalAmount": data.total_amount,
        "items": data.items,
    }


# Add to Cart

@router.post("/add/{book_id}")
def add_to_cart(
    book_id: int,
    data: Optional[CartAddRequest] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    quantity = data.quantity if data else 1
    if quantity < 1:
        raise HTTPException(400, "Quantity must be at least 1")

    book = session.get(Book, book_id)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")

    if book.is_free:
        raise HTTPException(400, "Free books cannot be added to cart")

    owned = session.exec(
        select(UserLibrary).where(
            UserLibrary.user_id == current_user.id,
            UserLibrary.book_id == book_id
        )
    ).first()
    if owned:
        raise HTTPException(400, "Book is already in your library")

    cart = get_or_create_cart(session, current_user.id)

    existing_item = _find_item(cart, book_id)
    if existing_item:
        # Increase quantity
        existing_item.quantity += quantity
    else:
        cart.items.append(CartItem(book_id=book_id, quantity=quantity))

    save_cart(session, cart)
    return serialize_cart(session, cart)


# Update Cart

@router.put("/update/{book_id}")
def update_cart_item(
    book_id: int,
    data: CartUpdateRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    if data.quantity < 1:
        raise HTTPException(400, "Quantity must be at least 1")

    cart = get_cart(session, current_user.id)
    if not cart:
        raise HTTPException(404, "Cart not found")

    item = _find_item(cart, book_id)
    if not item:
        raise HTTPException(404, "Item not found in cart")

    item.quantity = data.quantity
    save_cart(session, cart)
    return serialize_cart(session, cart)


# Remove Cart

@router.delete("/remove/{book_id}")
def remove_item(
    book_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    cart = get_cart(session, current_user.id)
    if not cart:
        raise HTTPException(404, "Cart not found")

    item = _find_item(cart, book_id)
    if item:
        cart.items.remove(item)
        save_cart(session, cart)

    return serialize_cart(session, cart)


# Clear Cart

@router.delete("/clear")
def clear_cart_endpoint(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    cart = get_cart(session, current_user.id)
    if not cart:
        raise HTTPException(404, "Cart not found")

    cart.items.clear()
    save_cart(session, cart)
    return {"message": "Cart cleared successfully"}
