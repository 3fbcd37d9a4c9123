# State = everything needed to resume a conversation after the process goes away.
#
# Stored per conversation key:
#
# message history
#
# HITL confirmation state (pending, approved, resolved confirmations and executions)
#
# the pending slot (received, not started) and the active slot (executing)
#
# free-form metadata
