"""
Test Suite for the Task Board

- taskboard/ - service, permission and state machine tests
- board_client/ - API client and board controller tests
"""
