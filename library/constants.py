API_PREFIX = "/api/v1"

# Borrowing policy
DEFAULT_BORROW_DURATION_DAYS = 14
DEFAULT_TOTAL_COPIES = 1

# Pagination / search
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
MIN_SEARCH_LENGTH = 2

# Largest value an INTEGER column holds; ids and offsets beyond it cannot exist
MAX_DB_INTEGER = 2**63 - 1
MAX_PAGE = MAX_DB_INTEGER // MAX_PAGE_SIZE
DEFAULT_SORT_BY = "createdAt"
DEFAULT_SORT_ORDER = "DESC"

# External search
EXTERNAL_SEARCH_DEFAULT_LIMIT = 10
EXTERNAL_SEARCH_MAX_LIMIT = 50
EXTERNAL_SEARCH_FIELDS = "title,author_name,isbn,first_publish_year,publisher,cover_i,key"
COVER_IMAGE_URL = "https://covers.openlibrary.org/b/id/{cover_id}-L.jpg"
UNKNOWN_AUTHOR = "Unknown Author"

# Book messages
BOOK_CREATED = "Book added successfully"
BOOK_UPDATED = "Book updated successfully"
BOOK_DELETED = "Book deleted successfully"
BOOK_BORROWED = "Book borrowed successfully"
BOOK_RETURNED = "Book returned successfully"
BOOKS_RETRIEVED = "Books retrieved successfully"
BORROWED_BOOKS_RETRIEVED = "Borrowed books retrieved successfully"
EXTERNAL_BOOKS_RETRIEVED = "External books retrieved successfully"

BOOK_NOT_FOUND = "Book not found"
BOOK_NOT_AVAILABLE = "Book is not available for borrowing"
BOOK_ALREADY_BORROWED = "You have already borrowed this book"
BOOK_BUSY = "Book is being updated by another request, please retry"
ISBN_ALREADY_EXISTS = "Book with this ISBN already exists"
INSUFFICIENT_COPIES = "Not enough copies available"
BORROW_RECORD_NOT_FOUND = "Borrow record not found"
BOOK_ALREADY_RETURNED = "This book has already been returned"
EXTERNAL_SEARCH_UNAVAILABLE = "External book search service unavailable"

# Auth messages
LOGIN_SUCCESS = "Login successful"
USER_CREATED = "User created successfully"
PROFILE_RETRIEVED = "Profile retrieved successfully"

INVALID_CREDENTIALS = "Invalid email or password"
USER_NOT_FOUND = "User not found"
USER_ALREADY_EXISTS = "User already exists"
USER_INACTIVE = "User account is inactive"
UNAUTHORIZED = "Unauthorized access"
FORBIDDEN = "Access forbidden"
INVALID_TOKEN = "Invalid token"
TOKEN_EXPIRED = "Token has expired"

INTERNAL_SERVER_ERROR = "Internal server error"
INVALID_REQUEST = "Invalid request parameters. Please check your input."
