"""
Screen routing for quiz channels.

Each channel moves between the seven screens of the journey through an
explicit transition table. The quiz engine is not aware of the router;
the controller feeds the engine's Finished outcome in as the QUIZ -> STATS
trigger.
"""
import logging
from enum import Enum
from typing import Dict, Set

logger = logging.getLogger(__name__)


class Screen(Enum):
    """Screens a channel can be on."""
    HOME = "home"
    LEVEL_SELECTION = "level_selection"
    LEVEL_QUIZ_SETUP = "level_quiz_setup"
    RANDOM_QUIZ_SETUP = "random_quiz_setup"
    CUSTOM_QUIZ_SETUP = "custom_quiz_setup"
    QUIZ = "quiz"
    STATS = "stats"


class RouteEvent(Enum):
    """Events that move a channel between screens."""
    OPEN_MAP = "open_map"
    SELECT_LEVEL = "select_level"
    OPEN_RANDOM_SETUP = "open_random_setup"
    OPEN_CUSTOM_SETUP = "open_custom_setup"
    START_QUIZ = "start_quiz"
    QUIZ_FINISHED = "quiz_finished"
    BACK = "back"
    PLAY_AGAIN = "play_again"


_SETUP_SCREENS = {Screen.LEVEL_QUIZ_SETUP, Screen.RANDOM_QUIZ_SETUP, Screen.CUSTOM_QUIZ_SETUP}

TRANSITIONS: Dict[Screen, Dict[RouteEvent, Screen]] = {
    Screen.HOME: {
        RouteEvent.OPEN_MAP: Screen.LEVEL_SELECTION,
    },
    Screen.LEVEL_SELECTION: {
        RouteEvent.SELECT_LEVEL: Screen.LEVEL_QUIZ_SETUP,
        RouteEvent.OPEN_RANDOM_SETUP: Screen.RANDOM_QUIZ_SETUP,
        RouteEvent.OPEN_CUSTOM_SETUP: Screen.CUSTOM_QUIZ_SETUP,
    },
    Screen.LEVEL_QUIZ_SETUP: {
        RouteEvent.START_QUIZ: Screen.QUIZ,
        RouteEvent.BACK: Screen.LEVEL_SELECTION,
    },
    Screen.RANDOM_QUIZ_SETUP: {
        RouteEvent.START_QUIZ: Screen.QUIZ,
        RouteEvent.BACK: Screen.LEVEL_SELECTION,
    },
    Screen.CUSTOM_QUIZ_SETUP: {
        RouteEvent.START_QUIZ: Screen.QUIZ,
        RouteEvent.BACK: Screen.LEVEL_SELECTION,
    },
    Screen.QUIZ: {
        RouteEvent.QUIZ_FINISHED: Screen.STATS,
        RouteEvent.BACK: Screen.LEVEL_SELECTION,
    },
    Screen.STATS: {
        RouteEvent.PLAY_AGAIN: Screen.LEVEL_SELECTION,
    },
}

# Slash commands jump straight to these events from any screen except a running quiz
GLOBAL_EVENTS: Set[RouteEvent] = {
    RouteEvent.OPEN_MAP,
    RouteEvent.SELECT_LEVEL,
    RouteEvent.OPEN_RANDOM_SETUP,
    RouteEvent.OPEN_CUSTOM_SETUP,
}


class InvalidTransitionError(Exception):
    """Raised when an event is not allowed on the current screen."""

    def __init__(self, screen: Screen, event: RouteEvent):
        super().__init__(f"Event '{event.value}' is not allowed on screen '{screen.value}'")
        self.screen = screen
        self.event = event


class ScreenRouter:
    """Per-channel finite-state router over the quiz screens."""

    def __init__(self):
        self._screens: Dict[int, Screen] = {}

    def current(self, channel_id: int) -> Screen:
        return self._screens.get(channel_id, Screen.HOME)

    def can_handle(self, channel_id: int, event: RouteEvent) -> bool:
        return self._target(self.current(channel_id), event) is not None

    def dispatch(self, channel_id: int, event: RouteEvent) -> Screen:
        """
        Apply an event to a channel.

        Returns:
            The screen the channel is on afterwards

        Raises:
            InvalidTransitionError: If the event is not allowed on the current screen
        """
        screen = self.current(channel_id)
        target = self._target(screen, event)
        if target is None:
            raise InvalidTransitionError(screen, event)

        self._screens[channel_id] = target
        logger.debug(f"Channel {channel_id}: {screen.value} --{event.value}--> {target.value}")
        return target

    def reset(self, channel_id: int) -> None:
        self._screens.pop(channel_id, None)

    def _target(self, screen: Screen, event: RouteEvent):
        target = TRANSITIONS.get(screen, {}).get(event)
        if target is not None:
            return target
        if event in GLOBAL_EVENTS and screen is not Screen.QUIZ:
            if event is RouteEvent.OPEN_MAP:
                return Screen.LEVEL_SELECTION
            # Setup screens are reached through the level map
            return TRANSITIONS[Screen.LEVEL_SELECTION][event]
        return None

    @staticmethod
    def is_setup_screen(screen: Screen) -> bool:
        return screen in _SETUP_SCREENS
