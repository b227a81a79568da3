from app.models.user import User
from app.models.book import Book
from app.models.chapter import Chapter
from app.models.cart import Cart, CartItem
from app.models.purchase import Purchase, PurchaseItem
from app.models.user_library import UserLibrary
from app.models.wishlist import Wishlist

# add ALL models here
