"""
CIPHER VAULT

Confidential-value capability for ledger contracts.

Values are held behind opaque handles. A handle is the hex form of a
Pedersen-style commitment C = g^v * h^r (mod p), so arithmetic with public
amounts stays homomorphic:
  - add(C, a) == C * g^a
  - sub(C, a) == C * g^-a

Only the contract that sealed a handle may operate on it. Comparisons leave
the vault as a single boolean. Plaintext leaves only through a decryption
request fulfilled by the gateway, delivered to the requester's
on_decryption() callback.

This reference backend keeps openings in vault storage and gives no hiding:
contract storage is public and blinding factors derive from public inputs,
so anyone can open a handle, and small-domain handles fall to a brute
force over their few candidate values. It stands in for a coprocessor
that exposes the same exports and keeps openings off-chain.
"""

# -----------------------------------------------------------------------------
# Parameters & Helpers
# -----------------------------------------------------------------------------

p = 2**255 - 19  # modulus for modular arithmetic (big prime)
U64_MAX = 2**64 - 1

def domain_hash(*parts):
    s = "|".join(str(x) for x in parts)
    return hashlib.sha3("XCVLT:v1|" + s)

def map_to_base(tag: str):
    # Derive a base in [2, p-2] from sha3(tag)
    return int(hashlib.sha3("XCVLT:gen:" + tag)[:32], 16) % (p - 3) + 2

def mod_exp(base: int, exponent: int, modulus: int):
    if exponent == 0:
        return 1
    result = 1
    base = base % modulus
    while exponent > 0:
        if exponent % 2 == 1:
            result = (result * base) % modulus
        exponent = exponent >> 1
        base = (base * base) % modulus
    return result

def mod_inverse(x: int, modulus: int):
    # Fermat since p is prime and x assumed != 0 mod p
    return mod_exp(x, modulus - 2, modulus)

def create_commitment(value: int, blinding: int):
    return (mod_exp(g, value, p) * mod_exp(h, blinding % (p - 1), p)) % p

g = map_to_base("g")
h = map_to_base("h")
assert g != h and g not in (1, p-1) and h not in (1, p-1), "Bad generators"

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# handle -> {'value': int, 'blinding': int, 'owner': str}
openings = Hash()

# request_id -> {'handle': str, 'requester': str, 'status': str}
decryptions = Hash()

# operator / gateway config
metadata = Hash()

next_blinding_nonce = Variable()
next_request_id = Variable()

# Events
DecryptionRequestedEvent = LogEvent('DecryptionRequested', {
    'requester': {'type': str, 'idx': True},
    'request_id': {'type': int, 'idx': True},
    'handle': {'type': str}
})

DecryptionFulfilledEvent = LogEvent('DecryptionFulfilled', {
    'requester': {'type': str, 'idx': True},
    'request_id': {'type': int, 'idx': True}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed():
    metadata['operator'] = ctx.caller
    metadata['gateway'] = ctx.caller

    next_blinding_nonce.set(1)
    next_request_id.set(1)

# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

@export
def get_metadata():
    return {
        'operator': metadata['operator'],
        'gateway': metadata['gateway']
    }

@export
def change_metadata(key: str, value: Any):
    assert ctx.caller == metadata['operator'], 'Unauthorized: only operator can set metadata'
    metadata[key] = value

@export
def get_decryption(request_id: int):
    data = decryptions[request_id]
    assert data is not None, 'NotFound: unknown decryption request'
    return {
        'request_id': request_id,
        'handle': data['handle'],
        'requester': data['requester'],
        'status': data['status']
    }

# -----------------------------------------------------------------------------
# Internal
# -----------------------------------------------------------------------------

def fresh_blinding(owner: str):
    nonce = next_blinding_nonce.get()
    next_blinding_nonce.set(nonce + 1)
    return int(domain_hash("blind", owner, nonce)[:32], 16) % (p - 1)

def load(handle: str):
    entry = openings[handle]
    assert entry is not None, 'NotFound: unknown ciphertext handle'
    assert entry['owner'] == ctx.caller, 'Unauthorized: handle is bound to another contract'
    return entry

def store(commitment: int, value: int, blinding: int, owner: str):
    handle = hex(commitment)
    openings[handle] = {
        'value': value,
        'blinding': blinding,
        'owner': owner
    }
    return handle

def check_amount(amount: int):
    assert isinstance(amount, int) and 0 <= amount <= U64_MAX, 'InvalidAmount: not a u64 value'

# -----------------------------------------------------------------------------
# Homomorphic operations
# -----------------------------------------------------------------------------

@export
def seal(value: int):
    check_amount(value)
    blinding = fresh_blinding(ctx.caller)
    return store(create_commitment(value, blinding), value, blinding, ctx.caller)

@export
def add(handle: str, amount: int):
    check_amount(amount)
    entry = load(handle)

    new_value = entry['value'] + amount
    assert new_value <= U64_MAX, 'Ciphertext overflow'

    new_commitment = (int(handle, 16) * mod_exp(g, amount, p)) % p
    return store(new_commitment, new_value, entry['blinding'], entry['owner'])

@export
def sub(handle: str, amount: int):
    check_amount(amount)
    entry = load(handle)

    assert entry['value'] >= amount, 'Ciphertext underflow'

    new_commitment = (int(handle, 16) * mod_inverse(mod_exp(g, amount, p), p)) % p
    return store(new_commitment, entry['value'] - amount, entry['blinding'], entry['owner'])

@export
def covers(handle: str, amount: int):
    check_amount(amount)
    entry = load(handle)
    return entry['value'] >= amount

@export
def fits(handle: str, amount: int):
    # True when adding amount keeps the value inside the u64 range
    check_amount(amount)
    entry = load(handle)
    return entry['value'] + amount <= U64_MAX

# -----------------------------------------------------------------------------
# Decryption
# -----------------------------------------------------------------------------

@export
def request_decryption(handle: str):
    load(handle)

    request_id = next_request_id.get()
    next_request_id.set(request_id + 1)

    decryptions[request_id] = {
        'handle': handle,
        'requester': ctx.caller,
        'status': 'pending'
    }

    DecryptionRequestedEvent({
        'requester': ctx.caller,
        'request_id': request_id,
        'handle': handle
    })

    return request_id

@export
def fulfill_decryption(request_id: int):
    assert ctx.caller == metadata['gateway'], 'Unauthorized: only the gateway can fulfill decryptions'

    data = decryptions[request_id]
    assert data is not None, 'NotFound: unknown decryption request'
    assert data['status'] == 'pending', 'Decryption already fulfilled'

    value = openings[data['handle']]['value']

    decryptions[request_id] = {
        'handle': data['handle'],
        'requester': data['requester'],
        'status': 'fulfilled'
    }

    requester = importlib.import_module(data['requester'])
    requester.on_decryption(request_id=request_id, value=value)

    DecryptionFulfilledEvent({
        'requester': data['requester'],
        'request_id': request_id
    })
