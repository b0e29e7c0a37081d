"""Screen components for the TUI.

- TasksScreen: the task tree, driven by the interaction loop
- modals: text prompt and authorization dialogs
"""

from rtm_client.screens.tasks_screen import TasksScreen

__all__ = [
    "TasksScreen",
]
