"""
Avatar synchronization package.

- AvatarResolver: per-screen fetch coordinator and sync map
- AvatarChannel / HttpAvatarChannel: request/response transport to the server
- SelfAvatarLoader: the local user's own profile and optimistic overrides
"""

from avatarsync.sync.channel import AvatarChannel, AvatarResponse, HttpAvatarChannel
from avatarsync.sync.resolver import AvatarResolver
from avatarsync.sync.self_avatar import SelfAvatarLoader, SelfProfile

__all__ = [
    "AvatarChannel",
    "AvatarResolver",
    "AvatarResponse",
    "HttpAvatarChannel",
    "SelfAvatarLoader",
    "SelfProfile",
]
