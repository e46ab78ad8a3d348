"""HTTP/WebSocket API for the interview voice pipeline."""
