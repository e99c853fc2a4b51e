# Inbound (client -> server)
CREATE_ROOM = "create-room"
JOIN_ROOM = "join-room"
GET_ROOM_STATE = "get-room-state"
START_GAME = "start-game"
FLIP_CARD = "flip-card"
CAST_VOTE = "cast-vote"
SKIP_TO_VOTING = "skip-to-voting"
RESET_GAME = "reset-game"
LEAVE_ROOM = "leave-room"

# Outbound, requester only
ROOM_CREATED = "room-created"
JOIN_SUCCESS = "join-success"
JOIN_ERROR = "join-error"
ROOM_STATE = "room-state"
ERROR = "error"

# Outbound, one player only (secret)
ROLE_ASSIGNED = "role-assigned"
CARD_REVEALED = "card-revealed"

# Outbound, room broadcast
PLAYERS_UPDATED = "players-updated"
GAME_STARTED = "game-started"
TURN_CHANGED = "turn-changed"
PHASE_CHANGED = "phase-changed"
VOTE_PROGRESS = "vote-progress"
RESULTS = "results"
