"""Identity provider bindings behind the auth adapter."""

from auth.bindings.base import (
    AuthStateEmitter,
    AuthStateEvent,
    AuthStateListener,
    IdentityBinding,
    Unsubscribe,
)
from auth.bindings.gotrue import GoTrueBinding
from auth.bindings.local import LocalBinding
