import enum


class UserRole(str, enum.Enum):
    USER = "USER"
    LIBRARIAN = "LIBRARIAN"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class UserStatus(str, enum.Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    INACTIVE = "INACTIVE"


class CopyStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    ISSUED = "ISSUED"
    RESERVED = "RESERVED"
    DAMAGED = "DAMAGED"
    LOST = "LOST"
    MAINTENANCE = "MAINTENANCE"


class BookCondition(str, enum.Enum):
    NEW = "NEW"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    DAMAGED = "DAMAGED"


class TransactionStatus(str, enum.Enum):
    ISSUED = "ISSUED"
    RENEWED = "RENEWED"
    OVERDUE = "OVERDUE"
    RETURNED = "RETURNED"


# Loan states that still hold a physical copy
OPEN_TRANSACTION_STATUSES = (
    TransactionStatus.ISSUED,
    TransactionStatus.RENEWED,
    TransactionStatus.OVERDUE,
)


class BorrowRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    NET_BANKING = "NET_BANKING"
    WALLET = "WALLET"


class PaymentStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    REFUNDED = "REFUNDED"


class NotificationType(str, enum.Enum):
    IN_APP = "IN_APP"
    EMAIL = "EMAIL"
    SMS = "SMS"


class NotificationCategory(str, enum.Enum):
    BOOK_ISSUED = "BOOK_ISSUED"
    BOOK_RETURNED = "BOOK_RETURNED"
    OVERDUE_NOTICE = "OVERDUE_NOTICE"
    PAYMENT_CONFIRMATION = "PAYMENT_CONFIRMATION"
    BORROW_REQUEST_CREATED = "BORROW_REQUEST_CREATED"
    BORROW_REQUEST_APPROVED = "BORROW_REQUEST_APPROVED"
    BORROW_REQUEST_REJECTED = "BORROW_REQUEST_REJECTED"
    ACCOUNT_UPDATE = "ACCOUNT_UPDATE"


class SettingCategory(str, enum.Enum):
    LIBRARY = "LIBRARY"
    LOANS = "LOANS"
    FINES = "FINES"
    SYSTEM = "SYSTEM"


class SettingDataType(str, enum.Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    JSON = "JSON"
