from inventory_backend.models.user import UserRecord
from inventory_backend.models.auth_session import SessionRecord
from inventory_backend.models.auth_event import AuthEvent
