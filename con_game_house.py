"""
CONFIDENTIAL GAME HOUSE

Wagering ledger with confidential player balances.

Player balances are ciphertext handles held by the cipher vault; the house
never sees them in plaintext. Sufficiency checks go through the vault's
boolean comparison. Plaintext reaches an owner only via request_reveal(),
completed asynchronously by the vault gateway.

Wagers settle in two phases. play() locks the bet: it escrows the stake,
reserves the worst-case net payout in the treasury and binds the wager to
the next unrevealed beacon round plus the hash of the block that carried
it. settle() may be called by anyone once that round is revealed; it draws
the outcome and pays or collects. The bettor cannot know the round's link
when betting, and the beacon keeper cannot know the block hash, so no
single party sees the outcome before the wager is locked.

Public state is limited to:
  - the operator treasury (house_funds, reserved_funds)
  - the pooled aggregate of all player funds (pooled_funds, escrowed_funds)
  - wagers, game records and per-player statistics

Games (payout multiple):
  0 CoinFlip        choice 0 heads / 1 tails, draw in [0, 1]      2x
  1 RangePredictor  choice 0 below / 1 above, draw in [1, 100]    2x
                    50 is the house number and loses both ways
  2 DiceRoller      choice 1..6, draw in [1, 6]                   6x
"""

# -----------------------------------------------------------------------------
# Parameters
# -----------------------------------------------------------------------------

COIN_FLIP = 0
RANGE_PREDICTOR = 1
DICE_ROLLER = 2

GAME_NAMES = ['CoinFlip', 'RangePredictor', 'DiceRoller']

# game_type -> [low, high] of the drawn value
DRAW_DOMAINS = [[0, 1], [1, 100], [1, 6]]

# game_type -> [low, high] of the player's choice
CHOICE_DOMAINS = [[0, 1], [0, 1], [1, 6]]

RANGE_MIDPOINT = 50
DEFAULT_MAX_BET = 100000000000000  # 0.0001 of a 10**18-unit coin

U64_MAX = 2**64 - 1

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# address -> {'handle': str, 'last_updated': int, 'updates': int}
balances = Hash()

# address -> {'balance': int, 'revealed_at': int, 'handle': str, 'sequence': int}
revealed = Hash()

# vault request_id -> {'account': str, 'handle': str, 'requested_at': int, 'sequence': int, 'status': str}
reveal_requests = Hash()

# address -> reveal requests issued / still pending
reveal_sequences = Hash(default_value=0)
pending_reveals = Hash(default_value=0)

# game_type -> {'numerator': int, 'denominator': int}
payout_multipliers = Hash()

# index -> game record
game_records = Hash()
game_count = Variable()

# (address, player index) -> global index
player_games = Hash()
player_game_count = Hash(default_value=0)

# address -> stats dict
player_stats = Hash()
players = Variable()

# wager_id -> wager dict
wagers = Hash()
wager_count = Variable()

# address -> sum of worst-case payouts of the player's pending wagers
pending_credits = Hash(default_value=0)

house_funds = Variable()
reserved_funds = Variable()
pooled_funds = Variable()
escrowed_funds = Variable()

# contract metadata / config
metadata = Hash()

# counter for events
next_tx_id = Variable()

# Events
DepositEvent = LogEvent('Deposit', {
    'player': {'type': str, 'idx': True},
    'amount': {'type': int},
    'tx_id': {'type': int, 'idx': True}
})

WithdrawEvent = LogEvent('Withdraw', {
    'player': {'type': str, 'idx': True},
    'amount': {'type': int},
    'tx_id': {'type': int, 'idx': True}
})

WagerPlacedEvent = LogEvent('WagerPlaced', {
    'player': {'type': str, 'idx': True},
    'wager_id': {'type': int, 'idx': True},
    'game_type': {'type': int},
    'bet_amount': {'type': int},
    'round': {'type': int},
    'tx_id': {'type': int, 'idx': True}
})

GamePlayedEvent = LogEvent('GamePlayed', {
    'player': {'type': str, 'idx': True},
    'game_type': {'type': int, 'idx': True},
    'wager_id': {'type': int},
    'bet_amount': {'type': int},
    'won': {'type': bool},
    'tx_id': {'type': int, 'idx': True}
})

BalanceDeltaEvent = LogEvent('BalanceDelta', {
    'player': {'type': str, 'idx': True},
    'previous_handle': {'type': str},
    'new_handle': {'type': str},
    'delta': {'type': int},
    'tx_id': {'type': int, 'idx': True}
})

RevealRequestedEvent = LogEvent('RevealRequested', {
    'player': {'type': str, 'idx': True},
    'request_id': {'type': int, 'idx': True},
    'handle': {'type': str}
})

BalanceRevealedEvent = LogEvent('BalanceRevealed', {
    'player': {'type': str, 'idx': True},
    'request_id': {'type': int, 'idx': True},
    'handle': {'type': str},
    'revealed_at': {'type': int}
})

HouseDepositEvent = LogEvent('HouseDeposit', {
    'operator': {'type': str, 'idx': True},
    'amount': {'type': int},
    'tx_id': {'type': int, 'idx': True}
})

HouseWithdrawEvent = LogEvent('HouseWithdraw', {
    'operator': {'type': str, 'idx': True},
    'amount': {'type': int},
    'tx_id': {'type': int, 'idx': True}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(token: str = 'currency',
         cipher: str = 'con_cipher_vault',
         outcome_source: str = 'con_outcome_beacon',
         max_bet: int = DEFAULT_MAX_BET):
    metadata['name'] = "Confidential Game House"
    metadata['operator'] = ctx.caller
    metadata['token'] = token
    metadata['cipher'] = cipher
    metadata['outcome_source'] = outcome_source
    metadata['max_bet'] = max_bet

    payout_multipliers[COIN_FLIP] = {'numerator': 2, 'denominator': 1}
    payout_multipliers[RANGE_PREDICTOR] = {'numerator': 2, 'denominator': 1}
    payout_multipliers[DICE_ROLLER] = {'numerator': 6, 'denominator': 1}

    house_funds.set(0)
    reserved_funds.set(0)
    pooled_funds.set(0)
    escrowed_funds.set(0)
    wager_count.set(0)
    game_count.set(0)
    players.set([])
    next_tx_id.set(1)

# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

@export
def get_metadata():
    return {
        'name': metadata['name'],
        'operator': metadata['operator'],
        'token': metadata['token'],
        'cipher': metadata['cipher'],
        'outcome_source': metadata['outcome_source'],
        'max_bet': metadata['max_bet']
    }

@export
def change_metadata(key: str, value: Any):
    require_operator()
    metadata[key] = value

@export
def get_payout_multiplier(game_type: int):
    check_game_type(game_type)
    data = payout_multipliers[game_type]
    return {
        'game_type': game_type,
        'numerator': data['numerator'],
        'denominator': data['denominator']
    }

@export
def set_payout_multiplier(game_type: int, numerator: int, denominator: int):
    require_operator()
    check_game_type(game_type)
    assert denominator > 0 and numerator >= denominator, 'Multiplier must be at least 1x'
    payout_multipliers[game_type] = {'numerator': numerator, 'denominator': denominator}

@export
def get_contract_balance():
    return house_funds.get() + pooled_funds.get() + escrowed_funds.get()

@export
def get_encrypted_balance(account: str):
    data = balances[account]
    if data is None:
        return {
            'exists': False,
            'handle': None,
            'last_updated': 0,
            'updates': 0
        }
    return {
        'exists': True,
        'handle': data['handle'],
        'last_updated': data['last_updated'],
        'updates': data['updates']
    }

@export
def get_revealed_balance(account: str):
    assert ctx.caller == account, 'Unauthorized: only the owner can read a revealed balance'

    data = revealed[account]
    current = balances[account]
    if data is None:
        return {
            'revealed': False,
            'balance': None,
            'revealed_at': 0,
            'stale': True,
            'pending': pending_reveals[account] > 0
        }
    return {
        'revealed': True,
        'balance': data['balance'],
        'revealed_at': data['revealed_at'],
        'stale': current is None or current['handle'] != data['handle'],
        'pending': pending_reveals[account] > 0
    }

@export
def get_house_funds():
    require_operator()
    return house_funds.get()

@export
def get_treasury():
    require_operator()
    funds = house_funds.get()
    reserved = reserved_funds.get()
    return {
        'funds': funds,
        'reserved': reserved,
        'available': funds - reserved
    }

@export
def verify_solvency():
    # Tokens held by the house must equal treasury, pooled and escrowed funds
    token = importlib.import_module(metadata['token'])
    held = token.balance_of(address=ctx.this)
    expected = house_funds.get() + pooled_funds.get() + escrowed_funds.get()
    return {
        'ok': held == expected,
        'held': held,
        'expected': expected
    }

# -----------------------------------------------------------------------------
# Internal: access, amounts, events
# -----------------------------------------------------------------------------

def require_operator():
    assert ctx.caller == metadata['operator'], 'Unauthorized: operator only'

def check_amount(amount: int):
    assert isinstance(amount, int) and 0 < amount <= U64_MAX, 'InvalidAmount: amount must be greater than 0'

def next_tx():
    tid = next_tx_id.get()
    next_tx_id.set(tid + 1)
    return tid

def emit_delta(player: str, previous_handle: str, new_handle: str, delta: int, tx_id: int):
    BalanceDeltaEvent({
        'player': player,
        'previous_handle': previous_handle or '',
        'new_handle': new_handle,
        'delta': delta,
        'tx_id': tx_id
    })

# -----------------------------------------------------------------------------
# Confidential Balance Store
# -----------------------------------------------------------------------------

def write_handle(account: str, handle: str):
    data = balances[account]
    balances[account] = {
        'handle': handle,
        'last_updated': block_num,
        'updates': (0 if data is None else data['updates']) + 1
    }

def current_handle(account: str):
    data = balances[account]
    assert data is not None, 'InsufficientFunds: account has no balance'
    return data['handle']

def debit(account: str, amount: int):
    cipher = importlib.import_module(metadata['cipher'])
    handle = current_handle(account)
    assert cipher.covers(handle=handle, amount=amount), 'InsufficientFunds: balance below requested amount'
    new_handle = cipher.sub(handle=handle, amount=amount)
    write_handle(account, new_handle)
    pooled_funds.set(pooled_funds.get() - amount)
    return new_handle

def check_room(account: str, amount: int):
    # Balance plus pending worst-case payouts plus amount must stay a u64
    headroom = amount + pending_credits[account]
    data = balances[account]
    if data is None:
        assert headroom <= U64_MAX, 'InvalidAmount: balance would exceed the u64 range'
        return
    cipher = importlib.import_module(metadata['cipher'])
    assert headroom <= U64_MAX and cipher.fits(handle=data['handle'], amount=headroom), 'InvalidAmount: balance would exceed the u64 range'

def credit(account: str, amount: int):
    check_room(account, amount)
    cipher = importlib.import_module(metadata['cipher'])
    data = balances[account]
    if data is None:
        new_handle = cipher.seal(value=amount)
    else:
        new_handle = cipher.add(handle=data['handle'], amount=amount)
    write_handle(account, new_handle)
    pooled_funds.set(pooled_funds.get() + amount)
    return new_handle

@export
def deposit(amount: int):
    check_amount(amount)
    player = ctx.caller
    check_room(player, amount)

    token = importlib.import_module(metadata['token'])
    token.transfer_from(amount=amount, to=ctx.this, main_account=player)

    data = balances[player]
    previous_handle = None if data is None else data['handle']
    new_handle = credit(player, amount)

    tx_id = next_tx()
    DepositEvent({
        'player': player,
        'amount': amount,
        'tx_id': tx_id
    })
    emit_delta(player, previous_handle, new_handle, amount, tx_id)

@export
def withdraw(amount: int):
    check_amount(amount)
    player = ctx.caller

    previous_handle = current_handle(player)
    new_handle = debit(player, amount)

    token = importlib.import_module(metadata['token'])
    token.transfer(amount=amount, to=player)

    tx_id = next_tx()
    WithdrawEvent({
        'player': player,
        'amount': amount,
        'tx_id': tx_id
    })
    emit_delta(player, previous_handle, new_handle, -amount, tx_id)

# -----------------------------------------------------------------------------
# Treasury
# -----------------------------------------------------------------------------

def credit_from_loss(amount: int):
    house_funds.set(house_funds.get() + amount)

def debit_for_payout(amount: int):
    funds = house_funds.get()
    assert funds >= amount, 'TreasuryInsufficient: house cannot cover payout'
    house_funds.set(funds - amount)

def reserve_payout(amount: int):
    reserved = reserved_funds.get()
    assert house_funds.get() - reserved >= amount, 'TreasuryInsufficient: house cannot cover worst-case payout'
    reserved_funds.set(reserved + amount)

def release_payout(amount: int):
    reserved_funds.set(reserved_funds.get() - amount)

@export
def deposit_house(amount: int):
    require_operator()
    check_amount(amount)
    operator = ctx.caller

    token = importlib.import_module(metadata['token'])
    token.transfer_from(amount=amount, to=ctx.this, main_account=operator)

    credit_from_loss(amount)

    HouseDepositEvent({
        'operator': operator,
        'amount': amount,
        'tx_id': next_tx()
    })

@export
def withdraw_house(amount: int):
    require_operator()
    check_amount(amount)
    operator = ctx.caller
    # Funds reserved for pending wagers cannot leave the treasury
    assert amount <= house_funds.get() - reserved_funds.get(), 'InsufficientFunds: treasury below requested amount'

    house_funds.set(house_funds.get() - amount)

    token = importlib.import_module(metadata['token'])
    token.transfer(amount=amount, to=operator)

    HouseWithdrawEvent({
        'operator': operator,
        'amount': amount,
        'tx_id': next_tx()
    })

# -----------------------------------------------------------------------------
# Game Engine
# -----------------------------------------------------------------------------

def check_game_type(game_type: int):
    assert isinstance(game_type, int) and 0 <= game_type < len(GAME_NAMES), 'InvalidChoice: unknown game type'

def validate_wager(game_type: int, choice: int, bet_amount: int):
    check_game_type(game_type)
    assert isinstance(bet_amount, int) and 0 < bet_amount <= metadata['max_bet'], 'InvalidBet: bet outside allowed bounds'

    low, high = CHOICE_DOMAINS[game_type]
    assert isinstance(choice, int) and low <= choice <= high, 'InvalidChoice: choice outside game domain'

def resolve(game_type: int, choice: int, drawn: int):
    if game_type == RANGE_PREDICTOR:
        if drawn < RANGE_MIDPOINT:
            return choice == 0
        if drawn > RANGE_MIDPOINT:
            return choice == 1
        return False
    return drawn == choice

def payout_for(game_type: int, bet_amount: int):
    multiplier = payout_multipliers[game_type]
    return bet_amount * multiplier['numerator'] // multiplier['denominator']

def lock_round(source_name: str):
    source = importlib.import_module(source_name)
    state = source.get_state()
    assert state['tip'] is not None, 'Outcome source has no committed chain'
    return state['round'] + 1, state['tip']

def draw_outcome(wager_id: int, wager: dict):
    source = importlib.import_module(wager['source'])
    low, high = DRAW_DOMAINS[wager['game_type']]
    salt = wager['player'] + "|" + str(wager['game_type']) + "|" + str(wager_id) + "|" + wager['entropy']

    drawn = source.draw(round_id=wager['round'], prior_tip=wager['prior_tip'], low=low, high=high, salt=salt)
    assert isinstance(drawn, int) and low <= drawn <= high, 'Outcome source returned a value outside the game domain'
    return drawn

# -----------------------------------------------------------------------------
# History & Statistics
# -----------------------------------------------------------------------------

def append_record(player: str, game_type: int, bet_amount: int, won: bool, outcome_handle: str):
    index = game_count.get()
    game_records[index] = {
        'player': player,
        'game_type': game_type,
        'bet_amount': bet_amount,
        'won': won,
        'timestamp': block_num,
        'encrypted_outcome': outcome_handle
    }
    game_count.set(index + 1)

    player_index = player_game_count[player]
    player_games[player, player_index] = index
    player_game_count[player] = player_index + 1

def update_stats(player: str, won: bool, profit: int):
    stats = player_stats[player]
    if stats is None:
        stats = {
            'player': player,
            'total_games': 0,
            'total_wins': 0,
            'total_losses': 0,
            'total_profit': 0,
            'last_game_time': 0,
            'largest_win': 0,
            'largest_loss': 0
        }
        known = players.get()
        known.append(player)
        players.set(known)

    stats['total_games'] += 1
    stats['total_profit'] += profit
    stats['last_game_time'] = block_num
    if won:
        stats['total_wins'] += 1
        stats['largest_win'] = max(stats['largest_win'], profit)
    else:
        stats['total_losses'] += 1
        stats['largest_loss'] = max(stats['largest_loss'], -profit)

    player_stats[player] = stats

def format_record(index: int):
    data = game_records[index]
    return {
        'player': data['player'],
        'game_type': data['game_type'],
        'game_name': GAME_NAMES[data['game_type']],
        'bet_amount': data['bet_amount'],
        'won': data['won'],
        'timestamp': data['timestamp'],
        'encrypted_outcome': data['encrypted_outcome']
    }

@export
def get_history_length(account: str):
    return player_game_count[account]

@export
def get_game_record(account: str, index: int):
    assert 0 <= index < player_game_count[account], 'IndexOutOfRange: no such game for account'
    return format_record(player_games[account, index])

@export
def get_recent_games(account: str, count: int):
    total = player_game_count[account]
    first = max(total - count, 0)
    return [format_record(player_games[account, i]) for i in range(total - 1, first - 1, -1)]

@export
def get_game_history_length():
    return game_count.get()

@export
def get_game(index: int):
    assert 0 <= index < game_count.get(), 'IndexOutOfRange: no such game'
    return format_record(index)

@export
def get_total_players():
    return len(players.get())

@export
def get_player_stats(account: str):
    stats = player_stats[account]
    assert stats is not None, 'NotFound: account has never played'
    return stats

@export
def get_leaderboard(count: int, sort_by: str = 'profit'):
    assert sort_by in ('profit', 'wins', 'games'), 'Unknown leaderboard ranking'

    ranked = []
    for player in players.get():
        stats = player_stats[player]
        if sort_by == 'profit':
            key = (-stats['total_profit'], -stats['total_games'], player)
        elif sort_by == 'wins':
            key = (-stats['total_wins'], -stats['total_games'], player)
        else:
            key = (-stats['total_games'], -stats['total_profit'], player)
        ranked.append(key)

    return [player_stats[key[2]] for key in sorted(ranked)[:max(count, 0)]]

# -----------------------------------------------------------------------------
# Settlement
# -----------------------------------------------------------------------------

def format_wager(wager_id: int):
    data = wagers[wager_id]
    return {
        'wager_id': wager_id,
        'player': data['player'],
        'game_type': data['game_type'],
        'choice': data['choice'],
        'bet_amount': data['bet_amount'],
        'payout': data['payout'],
        'source': data['source'],
        'round': data['round'],
        'prior_tip': data['prior_tip'],
        'entropy': data['entropy'],
        'status': data['status'],
        'won': data['won'],
        'placed_at': data['placed_at'],
        'settled_at': data['settled_at']
    }

@export
def get_wager(wager_id: int):
    assert wagers[wager_id] is not None, 'NotFound: unknown wager'
    return format_wager(wager_id)

@export
def get_wager_count():
    return wager_count.get()

@export
def get_pending_payouts(account: str):
    return pending_credits[account]

@export
def play(game_type: int, choice: int, bet_amount: int):
    player = ctx.caller
    validate_wager(game_type, choice, bet_amount)

    cipher = importlib.import_module(metadata['cipher'])
    previous_handle = current_handle(player)
    assert cipher.covers(handle=previous_handle, amount=bet_amount), 'InsufficientFunds: balance below bet amount'

    # Terms and outcome source are fixed at lock time
    payout = payout_for(game_type, bet_amount)
    exposure = payout - bet_amount
    check_room(player, exposure)
    source_name = metadata['outcome_source']
    round_id, prior_tip = lock_round(source_name)

    # Checks are done; the treasury reservation is the last one
    reserve_payout(exposure)
    handle = debit(player, bet_amount)
    escrowed_funds.set(escrowed_funds.get() + bet_amount)
    pending_credits[player] += payout

    wager_id = wager_count.get() + 1
    wager_count.set(wager_id)
    wagers[wager_id] = {
        'player': player,
        'game_type': game_type,
        'choice': choice,
        'bet_amount': bet_amount,
        'payout': payout,
        'source': source_name,
        'round': round_id,
        'prior_tip': prior_tip,
        'entropy': str(block_hash),
        'status': 'pending',
        'won': None,
        'placed_at': block_num,
        'settled_at': 0
    }

    tx_id = next_tx()
    WagerPlacedEvent({
        'player': player,
        'wager_id': wager_id,
        'game_type': game_type,
        'bet_amount': bet_amount,
        'round': round_id,
        'tx_id': tx_id
    })
    emit_delta(player, previous_handle, handle, -bet_amount, tx_id)

    return wager_id

@export
def settle(wager_id: int):
    # Permissionless: the outcome depends only on locked wager data
    wager = wagers[wager_id]
    assert wager is not None, 'NotFound: unknown wager'
    assert wager['status'] == 'pending', 'Wager already settled'

    drawn = draw_outcome(wager_id, wager)

    player = wager['player']
    game_type = wager['game_type']
    bet_amount = wager['bet_amount']
    payout = wager['payout']
    exposure = payout - bet_amount
    won = resolve(game_type, wager['choice'], drawn)

    escrowed_funds.set(escrowed_funds.get() - bet_amount)
    release_payout(exposure)
    pending_credits[player] -= payout

    tx_id = next_tx()
    if won:
        profit = exposure
        debit_for_payout(exposure)
        previous_handle = current_handle(player)
        handle = credit(player, payout)
        emit_delta(player, previous_handle, handle, payout, tx_id)
    else:
        profit = -bet_amount
        credit_from_loss(bet_amount)

    cipher = importlib.import_module(metadata['cipher'])
    append_record(player, game_type, bet_amount, won, cipher.seal(value=drawn))
    update_stats(player, won, profit)

    wager['status'] = 'won' if won else 'lost'
    wager['won'] = won
    wager['settled_at'] = block_num
    wagers[wager_id] = wager

    GamePlayedEvent({
        'player': player,
        'game_type': game_type,
        'wager_id': wager_id,
        'bet_amount': bet_amount,
        'won': won,
        'tx_id': tx_id
    })

    return won

# -----------------------------------------------------------------------------
# Reveal Protocol
# -----------------------------------------------------------------------------

@export
def request_reveal():
    player = ctx.caller
    data = balances[player]
    assert data is not None, 'NotFound: account has no balance to reveal'

    cipher = importlib.import_module(metadata['cipher'])
    request_id = cipher.request_decryption(handle=data['handle'])

    sequence = reveal_sequences[player] + 1
    reveal_sequences[player] = sequence
    pending_reveals[player] += 1

    reveal_requests[request_id] = {
        'account': player,
        'handle': data['handle'],
        'requested_at': block_num,
        'sequence': sequence,
        'status': 'pending'
    }

    RevealRequestedEvent({
        'player': player,
        'request_id': request_id,
        'handle': data['handle']
    })

    return request_id

@export
def on_decryption(request_id: int, value: int):
    assert ctx.caller == metadata['cipher'], 'Unauthorized: only the cipher vault can complete reveals'

    request = reveal_requests[request_id]
    assert request is not None, 'NotFound: unknown reveal request'
    assert request['status'] == 'pending', 'Reveal already completed'

    player = request['account']
    pending_reveals[player] -= 1

    cached = revealed[player]
    if cached is not None and cached['sequence'] > request['sequence']:
        # A later request already completed; keep the newer snapshot
        request['status'] = 'superseded'
        reveal_requests[request_id] = request
        return

    revealed[player] = {
        'balance': value,
        'revealed_at': block_num,
        'handle': request['handle'],
        'sequence': request['sequence']
    }
    request['status'] = 'revealed'
    reveal_requests[request_id] = request

    BalanceRevealedEvent({
        'player': player,
        'request_id': request_id,
        'handle': request['handle'],
        'revealed_at': block_num
    })

@export
def get_reveal_request(request_id: int):
    request = reveal_requests[request_id]
    assert request is not None, 'NotFound: unknown reveal request'
    assert ctx.caller == request['account'], 'Unauthorized: only the owner can inspect a reveal'
    return request
