# Import all the models, so that Base has them before metadata.create_all
from apicopilot.db.base_class import Base  # noqa

from apicopilot.models.registered_api import RegisteredApi  # noqa
from apicopilot.models.conversation import Conversation, Message  # noqa
from apicopilot.models.analytics import UsageLog, ApiCallLog  # noqa
