"""
Board Client

Client side of the task board:
- TaskBoardClient: async HTTP client for the task board API
- BoardController: board state, drag-and-drop gating and optimistic updates
"""

from .api_client import TaskBoardClient
from .board import BoardController, BoardNotice

__all__ = ["TaskBoardClient", "BoardController", "BoardNotice"]
