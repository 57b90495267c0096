"""Services package: expose all concrete services from one import."""
from .borrow_service import BorrowService
from .theme_permission_service import ThemePermissionService, BATCH_SIZE
from .theme_service import ThemeService

__all__ = [
    'BorrowService',
    'ThemePermissionService',
    'ThemeService',
    'BATCH_SIZE',
]
