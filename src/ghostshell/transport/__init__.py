"""Client transport: event framing and WebSocket channels."""
