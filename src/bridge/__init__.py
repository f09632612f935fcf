"""Per-call relay between the telephony media stream and the realtime voice agent.

Flow for one call:
telephony socket + realtime socket -> BootstrapCoordinator (both ready) ->
AudioRelay (audio both ways, barge-in) -> CallLifecycle (teardown of both).
"""
