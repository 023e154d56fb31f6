"""
CONFIDENTIAL COPROCESSOR (mock executor)

Ciphertexts are referenced by opaque handles. Each handle carries an
append-only access list of principals allowed to ask the relayer for
its decryption. Contracts compute over handles only:
  - add / mul / rem / cast          -> new euint handle
  - gt / eq                         -> new ebool handle
  - select(ebool, a, b)             -> new handle, no plaintext branch

Every new handle starts with an EMPTY access list. Its producer may use
it in further operations and grant it; nobody else can until granted.

The cleartext store below stands in for the coprocessor's ciphertext
database. Only the relayer reads it.
"""

# -----------------------------------------------------------------------------
# Parameters & Helpers
# -----------------------------------------------------------------------------

EMPTY_HANDLE = '0x' + '0' * 64

WIDTHS = {'ebool': 1, 'euint32': 32, 'euint64': 64}

def domain_hash(*parts):
    s = "|".join([str(x) for x in parts])
    return hashlib.sha3("FHEX:v1|" + s)

def check_type(fhe_type: str):
    assert fhe_type in WIDTHS, 'UnsupportedType: ' + str(fhe_type)

def wrap(value: int, fhe_type: str):
    return value % (2 ** WIDTHS[fhe_type])

def record_of(handle: str):
    record = ciphertexts[handle]
    assert record is not None, 'UnknownHandle: ' + str(handle)
    return record

def may_use(handle: str, principal: str):
    record = record_of(handle)
    return record['producer'] == principal or acl[handle, principal]

def require_use(handle: str):
    assert may_use(handle, ctx.caller), 'AccessDenied: ' + ctx.caller + ' cannot use ' + handle
    return record_of(handle)

def arithmetic_type(lhs_type: str, rhs_type: str):
    assert lhs_type != 'ebool' and rhs_type != 'ebool', 'UnsupportedType: arithmetic on ebool'
    if WIDTHS[lhs_type] >= WIDTHS[rhs_type]:
        return lhs_type
    return rhs_type

def new_handle(fhe_type: str, value: int):
    count = handle_count.get() + 1
    handle_count.set(count)

    handle = '0x' + domain_hash('handle', ctx.this, ctx.caller, count)[:64]
    ciphertexts[handle] = {
        'type': fhe_type,
        'producer': ctx.caller,
        'created': count
    }
    cleartexts[handle] = wrap(value, fhe_type)
    return handle

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# handle -> {'type': str, 'producer': str, 'created': int}
ciphertexts = Hash()

# handle -> int (coprocessor backing store)
cleartexts = Hash()

# (handle, principal) -> bool, append-only
acl = Hash(default_value=False)

# handle -> {'type': str, 'contract': str, 'user': str, 'consumed': bool}
inputs = Hash()

# operator, input_verifier
metadata = Hash()

handle_count = Variable()

AllowedEvent = LogEvent('Allowed', {
    'handle': {'type': str, 'idx': True},
    'principal': {'type': str, 'idx': True}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(input_verifier: str):
    metadata['operator'] = ctx.caller
    metadata['input_verifier'] = input_verifier
    handle_count.set(0)

@export
def get_metadata():
    return {
        'operator': metadata['operator'],
        'input_verifier': metadata['input_verifier'],
        'handles': handle_count.get()
    }

@export
def change_metadata(key: str, value: Any):
    assert ctx.caller == metadata['operator'], 'Only operator can set metadata'
    metadata[key] = value

# -----------------------------------------------------------------------------
# Capabilities
# -----------------------------------------------------------------------------

@export
def encrypt(value: int, fhe_type: str):
    check_type(fhe_type)
    return new_handle(fhe_type, value)

@export
def grant(handle: str, principal: str):
    require_use(handle)
    if acl[handle, principal]:
        return handle

    acl[handle, principal] = True
    AllowedEvent({'handle': handle, 'principal': principal})
    return handle

@export
def is_allowed(handle: str, principal: str):
    if ciphertexts[handle] is None:
        return False
    return acl[handle, principal]

@export
def get_ciphertext(handle: str):
    record = ciphertexts[handle]
    if record is None:
        return {'exists': False, 'type': None, 'producer': None}
    return {'exists': True, 'type': record['type'], 'producer': record['producer']}

# -----------------------------------------------------------------------------
# External inputs
# -----------------------------------------------------------------------------

@export
def register_input(handle: str, fhe_type: str, value: int, contract: str, user: str):
    assert ctx.caller == metadata['operator'], 'Only operator can register inputs'
    check_type(fhe_type)
    assert handle != EMPTY_HANDLE, 'InvalidProof: empty handle'
    assert ciphertexts[handle] is None and inputs[handle] is None, 'InvalidProof: handle already registered'

    inputs[handle] = {
        'type': fhe_type,
        'contract': contract,
        'user': user,
        'consumed': False
    }
    cleartexts[handle] = wrap(value, fhe_type)

@export
def from_external(handle: str, proof: str, user: str):
    pending = inputs[handle]
    assert pending is not None, 'InvalidProof: unknown input ' + handle
    assert not pending['consumed'], 'InvalidProof: input already consumed'
    assert pending['contract'] == ctx.caller, 'InvalidProof: input bound to another contract'
    assert pending['user'] == user, 'InvalidProof: input bound to another user'

    message = domain_hash('input', ctx.this, ctx.caller, user, handle)
    assert crypto.verify(metadata['input_verifier'], message, proof), 'InvalidProof: bad signature'

    inputs[handle] = {
        'type': pending['type'],
        'contract': pending['contract'],
        'user': user,
        'consumed': True
    }

    count = handle_count.get() + 1
    handle_count.set(count)
    ciphertexts[handle] = {
        'type': pending['type'],
        'producer': ctx.caller,
        'created': count
    }
    return handle

# -----------------------------------------------------------------------------
# Arithmetic (results carry an empty access list)
# -----------------------------------------------------------------------------

@export
def add(lhs: str, rhs: str):
    fhe_type = arithmetic_type(require_use(lhs)['type'], require_use(rhs)['type'])
    return new_handle(fhe_type, cleartexts[lhs] + cleartexts[rhs])

@export
def mul(lhs: str, rhs: str):
    fhe_type = arithmetic_type(require_use(lhs)['type'], require_use(rhs)['type'])
    return new_handle(fhe_type, cleartexts[lhs] * cleartexts[rhs])

@export
def rem(lhs: str, modulus: int):
    fhe_type = require_use(lhs)['type']
    assert fhe_type != 'ebool', 'UnsupportedType: arithmetic on ebool'
    assert modulus > 0, 'DivisionByZero: modulus must be positive'
    return new_handle(fhe_type, cleartexts[lhs] % modulus)

@export
def cast(handle: str, fhe_type: str):
    require_use(handle)
    check_type(fhe_type)
    return new_handle(fhe_type, cleartexts[handle])

@export
def gt(lhs: str, rhs: str):
    require_use(lhs)
    require_use(rhs)
    return new_handle('ebool', 1 if cleartexts[lhs] > cleartexts[rhs] else 0)

@export
def eq(lhs: str, rhs: str):
    require_use(lhs)
    require_use(rhs)
    return new_handle('ebool', 1 if cleartexts[lhs] == cleartexts[rhs] else 0)

@export
def select(condition: str, if_true: str, if_false: str):
    assert require_use(condition)['type'] == 'ebool', 'UnsupportedType: select needs an ebool condition'
    fhe_type = require_use(if_true)['type']
    assert require_use(if_false)['type'] == fhe_type, 'UnsupportedType: select branches differ'

    # Both branches are evaluated by the coprocessor; callers never branch.
    chosen = cleartexts[if_true] * cleartexts[condition] + cleartexts[if_false] * (1 - cleartexts[condition])
    return new_handle(fhe_type, chosen)

# -----------------------------------------------------------------------------
# Randomness
# -----------------------------------------------------------------------------

@export
def random_euint32():
    random.seed()
    handle = new_handle('euint32', random.randint(0, 2 ** 32 - 1))
    acl[handle, ctx.caller] = True
    AllowedEvent({'handle': handle, 'principal': ctx.caller})
    return handle
