"""
OUTCOME BEACON

Hash-chain commit-reveal randomness for deferred game settlement.

The keeper builds a chain s_0 <- s_1 <- ... <- s_n where s_(i-1) = H(s_i),
commits the anchor s_0 and later reveals s_1, s_2, ... one link per round.
A link is accepted only if it hashes to the current tip, so link values are
fixed at commitment time and cannot be steered by anyone afterwards.

Rounds are numbered across chains. A consumer locks a bet to the next
round (get_state()['round'] + 1) together with the tip current at lock
time. Once that round is revealed, draw(round_id, prior_tip, low, high,
salt) returns a uniform integer in [low, high] derived from the round's
link, the consumer and the salt. The draw refuses a round whose link does
not hash to prior_tip, so committing a fresh chain cannot re-roll rounds
that bets are already locked to.

Draws are pure functions of public data once the round is revealed, so
consumers mix per-bet entropy the keeper does not control into the salt.
"""

# -----------------------------------------------------------------------------
# Parameters & Helpers
# -----------------------------------------------------------------------------

DRAW_SPACE = 2**64  # 16 hex digits of a digest

def link_hash(link: str):
    return hashlib.sha3("BEACON:link|" + link)

def draw_digest(link: str, consumer: str, salt: str):
    return hashlib.sha3("BEACON:draw|" + link + "|" + consumer + "|" + salt)

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

metadata = Hash()

tip = Variable()
epoch = Variable()
round_number = Variable()

# round -> {'link': str, 'epoch': int}
links = Hash()

# Events
ChainCommittedEvent = LogEvent('ChainCommitted', {
    'keeper': {'type': str, 'idx': True},
    'epoch': {'type': int, 'idx': True},
    'anchor': {'type': str}
})

LinkRevealedEvent = LogEvent('LinkRevealed', {
    'epoch': {'type': int, 'idx': True},
    'round': {'type': int, 'idx': True},
    'link': {'type': str}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed():
    metadata['keeper'] = ctx.caller

    tip.set(None)
    epoch.set(0)
    round_number.set(0)

# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

@export
def get_state():
    return {
        'keeper': metadata['keeper'],
        'tip': tip.get(),
        'epoch': epoch.get(),
        'round': round_number.get()
    }

@export
def get_link(round_id: int):
    data = links[round_id]
    assert data is not None, 'Beacon round not revealed yet'
    return {
        'round': round_id,
        'link': data['link'],
        'epoch': data['epoch']
    }

@export
def change_metadata(key: str, value: Any):
    assert ctx.caller == metadata['keeper'], 'Unauthorized: only keeper can set metadata'
    metadata[key] = value

# -----------------------------------------------------------------------------
# Chain management
# -----------------------------------------------------------------------------

@export
def commit_chain(anchor: str):
    assert ctx.caller == metadata['keeper'], 'Unauthorized: only keeper can commit a chain'
    assert len(anchor) > 0, 'Empty anchor'

    new_epoch = epoch.get() + 1
    epoch.set(new_epoch)
    tip.set(anchor)

    ChainCommittedEvent({
        'keeper': ctx.caller,
        'epoch': new_epoch,
        'anchor': anchor
    })

@export
def reveal(link: str):
    # Anyone holding the next preimage may advance the chain
    current = tip.get()
    assert current is not None, 'Beacon has no committed chain'
    assert link_hash(link) == current, 'Link does not extend the chain'

    new_round = round_number.get() + 1
    tip.set(link)
    round_number.set(new_round)
    links[new_round] = {
        'link': link,
        'epoch': epoch.get()
    }

    LinkRevealedEvent({
        'epoch': epoch.get(),
        'round': new_round,
        'link': link
    })

# -----------------------------------------------------------------------------
# Draws
# -----------------------------------------------------------------------------

@export
def draw(round_id: int, prior_tip: str, low: int, high: int, salt: str):
    assert high >= low, 'Empty draw domain'

    data = links[round_id]
    assert data is not None, 'Beacon round not revealed yet'
    assert link_hash(data['link']) == prior_tip, 'Beacon round was revealed from a different chain'

    span = high - low + 1
    limit = DRAW_SPACE - DRAW_SPACE % span

    # Rejection sampling keeps every value in the domain equally likely
    digest = draw_digest(data['link'], ctx.caller, salt)
    value = int(digest[:16], 16)
    while value >= limit:
        digest = hashlib.sha3("BEACON:draw|" + digest)
        value = int(digest[:16], 16)

    return low + value % span
