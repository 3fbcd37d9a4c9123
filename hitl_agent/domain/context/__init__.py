# Context handling for a conversation
#
# +---------------------+
# |      History        |   (Durable, FIFO-trimmed to max_history_length)
# |---------------------|
# | User turns          |
# | Assistant turns     |
# +---------------------+
#
# +---------------------+
# |      State          |   (Durable, one per conversation key)
# |---------------------|
# | HITL state          |
# | Pending slot        |
# | Active slot         |
# | Metadata            |
# +---------------------+
#
#    \    /
#     \  /
#      \/
# +------------------------------+
# |      ExecutionContext        |   (Built per inbound message)
# |------------------------------|
# | History snapshot             |
# | Query                        |
# | Trace                        |
# +------------------------------+
#         |
#         v
#   [responder / LLM / tool call]
