"""Core orchestration: conversation, budget, dispatch, events and the loop."""
