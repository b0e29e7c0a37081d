"""Widget components for the TUI."""

from rtm_client.widgets.keys_panel import SHORTCUTS, KeysPanel
from rtm_client.widgets.status_bar import StatusBar
from rtm_client.widgets.task_detail import TaskDetailWidget
from rtm_client.widgets.task_tree import TaskTreeWidget

__all__ = [
    "KeysPanel",
    "SHORTCUTS",
    "StatusBar",
    "TaskDetailWidget",
    "TaskTreeWidget",
]
