# companion_app/models/__init__.py

# Import the Base object so metadata.create_all sees every table
from companion_app.database import Base

from .category import Category
from .companion import Companion
from .message import Message
from .usage import UsageRecord
from .subscription import UserSubscription
