"""Twilio Media Streams side of the relay.

The provider connects to our websocket after the incoming-call webhook returns
<Connect><Stream>. Frames are JSON; audio payloads stay base64 and are never
decoded here.
"""
