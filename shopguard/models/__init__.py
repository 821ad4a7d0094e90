from shopguard.models.user import User
from shopguard.models.banned_ip import BannedIP
