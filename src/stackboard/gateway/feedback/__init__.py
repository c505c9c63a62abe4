"""User-facing messages for the board (errors and notices).

Import from submodules:
- stackboard.gateway.feedback.abc: UserFeedback
- stackboard.gateway.feedback.real: ConsoleFeedback
- stackboard.gateway.feedback.fake: FakeUserFeedback
"""
