"""Models package."""

from .profile import Profile
from .social_link import SocialLink
from .connected_account import ConnectedAccount
from .follower_history import FollowerHistory
