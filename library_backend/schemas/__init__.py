from .common import ApiResponse, CamelModel, ok, paged
from .auth import RegisterRequest, LoginRequest, CreateUserRequest, UpdateUserRequest, SuspendUserRequest
from .book import (
    BookCreate, BookUpdate, AddCopiesRequest, UpdateCopyRequest, UpdateCopyStatusRequest,
    UpdateInventoryRequest, BulkImportRequest
)
from .transaction import (
    IssueBookRequest, ReturnBookRequest, RenewTransactionRequest, PayFineRequest,
    BorrowRequestCreate, ApproveBorrowRequest, RejectBorrowRequest
)
from .payment import RecordPaymentRequest, RefundPaymentRequest
from .setting import UpdateSettingRequest
