from template_interview.dao.conversation_cache_dao import ConversationCacheDAO
from template_interview.dao.rate_limit_dao import RateLimitDAO
from template_interview.dao.session_dao import SessionDAO

__all__ = [
    "ConversationCacheDAO",
    "RateLimitDAO",
    "SessionDAO",
]
