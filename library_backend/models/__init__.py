from .user import User
from .book import Book, BookCopy
from .transaction import Transaction, BorrowRequest
from .payment import Payment
from .notification import Notification
from .setting import Setting

__all__ = [
    "User",
    "Book",
    "BookCopy",
    "Transaction",
    "BorrowRequest",
    "Payment",
    "Notification",
    "Setting",
]
