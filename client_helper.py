import hashlib
import secrets

# ---- Chain-constant parameters & helpers (mirror contracts) ----

p = 2**255 - 19
U64_MAX = 2**64 - 1
DRAW_SPACE = 2**64

COIN_FLIP = 0
RANGE_PREDICTOR = 1
DICE_ROLLER = 2

GAME_NAMES = ['CoinFlip', 'RangePredictor', 'DiceRoller']
DRAW_DOMAINS = [(0, 1), (1, 100), (1, 6)]
CHOICE_DOMAINS = [(0, 1), (0, 1), (1, 6)]
DEFAULT_MULTIPLIERS = [(2, 1), (2, 1), (6, 1)]
RANGE_MIDPOINT = 50

def sha3_hex(s: str) -> str:
    # Matches Xian env semantics: hex strings are hashed as bytes
    try:
        data = bytes.fromhex(s)
    except ValueError:
        data = s.encode()
    return hashlib.sha3_256(data).hexdigest()

def map_to_base(tag: str) -> int:
    return int(sha3_hex("XCVLT:gen:" + tag)[:32], 16) % (p - 3) + 2

g = map_to_base("g")
h = map_to_base("h")

def mod_exp(base: int, exponent: int, modulus: int) -> int:
    if exponent == 0:
        return 1
    result = 1
    base = base % modulus
    e = exponent
    while e > 0:
        if e & 1:
            result = (result * base) % modulus
        e >>= 1
        base = (base * base) % modulus
    return result

def mod_inverse(x: int, modulus: int = p) -> int:
    return mod_exp(x % modulus, modulus - 2, modulus)

def create_commitment(value: int, blinding: int) -> int:
    # Mirrors the vault's handle construction
    return (mod_exp(g, value, p) * mod_exp(h, blinding % (p - 1), p)) % p

def handle_for(value: int, blinding: int) -> str:
    return hex(create_commitment(value, blinding))

def shift_handle(handle: str, delta: int) -> str:
    """
    Applies a public signed delta to a handle the same way the vault's
    add()/sub() do, without knowing the blinding.
    """
    step = mod_exp(g, abs(delta), p)
    if delta < 0:
        step = mod_inverse(step)
    return hex((int(handle, 16) * step) % p)

# ---- Outcome beacon ------------------------------------------------------------

def link_hash(link: str) -> str:
    return sha3_hex("BEACON:link|" + link)

def random_secret() -> str:
    return secrets.token_hex(32)

def build_hash_chain(secret: str = None, length: int = 16):
    """
    Returns [anchor, link_1, ..., link_n] where every link hashes to the one
    before it. Commit links[0] with commit_chain() and reveal the rest in
    order with reveal().
    """
    if length < 1:
        raise ValueError("Chain needs at least one revealable link")
    if secret is None:
        secret = random_secret()

    links = [secret]
    for _ in range(length):
        links.append(link_hash(links[-1]))
    links.reverse()
    return links

def predict_draw(link: str, consumer: str, salt: str, low: int, high: int) -> int:
    """
    Recomputes beacon.draw() for a settled wager. `link` is the link the
    beacon revealed for the wager's round (beacon.get_link()), and `salt`
    comes from draw_salt() with the entropy recorded at lock time. Both
    exist only after the wager is locked, so this audits past outcomes and
    cannot forecast open ones.
    """
    if high < low:
        raise ValueError("Empty draw domain")
    span = high - low + 1
    limit = DRAW_SPACE - DRAW_SPACE % span

    digest = sha3_hex("BEACON:draw|" + link + "|" + consumer + "|" + salt)
    value = int(digest[:16], 16)
    while value >= limit:
        digest = sha3_hex("BEACON:draw|" + digest)
        value = int(digest[:16], 16)
    return low + value % span

def draw_salt(player: str, game_type: int, wager_id: int, entropy: str) -> str:
    # entropy is the block hash the house stored when the wager was locked
    return player + "|" + str(game_type) + "|" + str(wager_id) + "|" + entropy

# ---- Game rules ------------------------------------------------------------------

def resolve(game_type: int, choice: int, drawn: int) -> bool:
    if game_type == RANGE_PREDICTOR:
        if drawn < RANGE_MIDPOINT:
            return choice == 0
        if drawn > RANGE_MIDPOINT:
            return choice == 1
        return False
    return drawn == choice

def winning_choice(game_type: int, drawn: int):
    """Returns a choice that wins against `drawn`, or None if none does."""
    low, high = CHOICE_DOMAINS[game_type]
    for choice in range(low, high + 1):
        if resolve(game_type, choice, drawn):
            return choice
    return None

def losing_choice(game_type: int, drawn: int) -> int:
    low, high = CHOICE_DOMAINS[game_type]
    for choice in range(low, high + 1):
        if not resolve(game_type, choice, drawn):
            return choice
    raise ValueError("Every choice wins against this draw")

def payout_for(game_type: int, bet_amount: int, multipliers=None) -> int:
    numerator, denominator = (multipliers or DEFAULT_MULTIPLIERS)[game_type]
    return bet_amount * numerator // denominator

def settlement_delta(game_type: int, bet_amount: int, won: bool, multipliers=None) -> int:
    if won:
        return payout_for(game_type, bet_amount, multipliers) - bet_amount
    return -bet_amount

# ---- Convenience: owner-side balance tracker (optional) ---------------------

class BalanceTracker:
    """
    Optional local helper to follow your own balance between reveals.
    Seed it from a BalanceRevealed snapshot, then feed it the BalanceDelta
    events emitted for your address.
    """
    def __init__(self, balance: int = None, handle: str = None):
        self.balance = balance
        self.handle = handle

    def apply_reveal(self, balance: int, handle: str):
        self.balance = balance
        self.handle = handle
        return self.balance

    def apply_delta(self, previous_handle: str, new_handle: str, delta: int):
        if self.handle is not None and (previous_handle or None) != self.handle:
            raise ValueError("Delta does not continue the tracked handle")
        if self.balance is not None:
            self.balance += delta
            if self.balance < 0 or self.balance > U64_MAX:
                raise ValueError("Tracked balance left the u64 range")
        self.handle = new_handle
        return self.balance

    def apply_events(self, events):
        for event in events:
            self.apply_delta(event['previous_handle'], event['new_handle'], event['delta'])
        return self.balance

    @property
    def synced(self) -> bool:
        return self.balance is not None
