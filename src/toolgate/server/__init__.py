from toolgate.server.app import create_app, create_runner
from toolgate.server.dispatcher import Dispatcher
from toolgate.server.runner import ServerRunner
from toolgate.server.session import Session, SessionStatus, SessionStore
from toolgate.server.settings import Settings
from toolgate.server.watchdog import ExitWatchdog

__all__ = [
    "Dispatcher",
    "ExitWatchdog",
    "ServerRunner",
    "Session",
    "SessionStatus",
    "SessionStore",
    "Settings",
    "create_app",
    "create_runner",
]
