"""
GHOST ODDS: confidential dice ledger

Balances and round state are ciphertext handles held by the executor
contract. The ledger never sees a cleartext:
  - join           mints encrypted points for a public deposit
  - start_round    draws an encrypted dice in 1..6 (hidden from the player)
  - submit_guess   resolves Big (1) / Small (2) with select-only logic

The player is granted the dice only once the round is resolved.
"""

# -----------------------------------------------------------------------------
# Parameters & Helpers
# -----------------------------------------------------------------------------

EMPTY_HANDLE = '0x' + '0' * 64

BIG = 1
SMALL = 2

def fhe_executor():
    return importlib.import_module(metadata['executor'])

def random_source():
    name = metadata['random_source']
    if name is None or name == '':
        return fhe_executor()
    return importlib.import_module(name)

def allow_all(fhe, handles: list, principal: str):
    for handle in handles:
        fhe.grant(handle=handle, principal=principal)

def next_tx():
    tid = next_tx_id.get()
    next_tx_id.set(tid + 1)
    return tid

def require_joined(address: str):
    account = players[address]
    assert account is not None and account['joined'], 'PlayerNotJoined: ' + address + ' has not joined'
    return account

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# address -> {'joined': bool, 'balance': str, 'deposits': int, 'joined_at': int}
players = Hash()

# address -> {'dice': str, 'guess': str, 'outcome': str,
#             'active': bool, 'history': bool, 'round_id': int,
#             'started_at': int, 'resolved_at': int}
# *_at fields hold the ledger tx_id that wrote them (0 = not yet)
rounds = Hash()

# operator, collaborators, economics
metadata = Hash()

next_tx_id = Variable()

PointsPurchasedEvent = LogEvent('PointsPurchased', {
    'player': {'type': str, 'idx': True},
    'deposit': {'type': int},
    'minted': {'type': int},
    'tx_id': {'type': int, 'idx': True}
})

RoundStartedEvent = LogEvent('RoundStarted', {
    'player': {'type': str, 'idx': True},
    'round_id': {'type': int},
    'tx_id': {'type': int, 'idx': True}
})

GuessResolvedEvent = LogEvent('GuessResolved', {
    'player': {'type': str, 'idx': True},
    'round_id': {'type': int},
    'tx_id': {'type': int, 'idx': True}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(executor_contract: str, vault_contract: str, random_contract: str):
    metadata['name'] = "Ghost Odds"
    metadata['operator'] = ctx.caller

    # Collaborators
    metadata['executor'] = executor_contract
    metadata['vault'] = vault_contract
    metadata['random_source'] = random_contract

    # 10000 points per whole unit, deposits counted in 1e-8 units
    metadata['points_per_unit'] = 10000
    metadata['unit_scale'] = 100000000
    metadata['round_reward'] = 1000

    metadata['total_deposits'] = 0

    next_tx_id.set(1)

# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

@export
def get_metadata():
    return {
        'name': metadata['name'],
        'operator': metadata['operator'],
        'executor': metadata['executor'],
        'vault': metadata['vault'],
        'random_source': metadata['random_source'],
        'points_per_unit': metadata['points_per_unit'],
        'unit_scale': metadata['unit_scale'],
        'round_reward': metadata['round_reward']
    }

@export
def change_metadata(key: str, value: Any):
    assert ctx.caller == metadata['operator'], 'Only operator can set metadata'
    metadata[key] = value

@export
def get_total_deposits():
    return metadata['total_deposits']

@export
def has_joined(address: str):
    account = players[address]
    return account is not None and account['joined']

@export
def get_balance(address: str):
    account = players[address]
    if account is None:
        return EMPTY_HANDLE
    return account['balance']

@export
def get_player_metadata(address: str):
    account = players[address]
    if account is None:
        return {'joined': False, 'deposits': 0, 'joined_at': 0}
    return {
        'joined': account['joined'],
        'deposits': account['deposits'],
        'joined_at': account['joined_at']
    }

@export
def get_round_metadata(address: str):
    data = rounds[address]
    if data is None:
        return {'active': False, 'history': False, 'round_id': 0, 'started_at': 0, 'resolved_at': 0}
    return {
        'active': data['active'],
        'history': data['history'],
        'round_id': data['round_id'],
        'started_at': data['started_at'],
        'resolved_at': data['resolved_at']
    }

@export
def get_dice_result(address: str):
    data = rounds[address]
    return EMPTY_HANDLE if data is None else data['dice']

@export
def get_last_guess(address: str):
    data = rounds[address]
    return EMPTY_HANDLE if data is None else data['guess']

@export
def get_last_outcome(address: str):
    data = rounds[address]
    return EMPTY_HANDLE if data is None else data['outcome']

# -----------------------------------------------------------------------------
# Balance ledger
# -----------------------------------------------------------------------------

@export
def join(deposit_amount: int):
    player = ctx.caller
    assert deposit_amount > 0, 'InvalidDeposit: deposit must be positive'

    minted = deposit_amount * metadata['points_per_unit'] // metadata['unit_scale']
    assert minted > 0, 'InvalidDeposit: deposit too small to mint points'

    vault = importlib.import_module(metadata['vault'])
    vault.transfer_from(amount=deposit_amount, to=ctx.this, main_account=player)

    fhe = fhe_executor()
    account = players[player]
    points = fhe.encrypt(value=minted, fhe_type='euint64')

    tx_id = next_tx()
    if account is None:
        current = fhe.encrypt(value=0, fhe_type='euint64')
        deposits = 0
        joined_at = tx_id
    else:
        current = account['balance']
        deposits = account['deposits']
        joined_at = account['joined_at']

    balance = fhe.add(lhs=current, rhs=points)
    allow_all(fhe, [balance], ctx.this)
    allow_all(fhe, [balance], player)

    players[player] = {
        'joined': True,
        'balance': balance,
        'deposits': deposits + deposit_amount,
        'joined_at': joined_at
    }
    metadata['total_deposits'] = metadata['total_deposits'] + deposit_amount

    PointsPurchasedEvent({
        'player': player,
        'deposit': deposit_amount,
        'minted': minted,
        'tx_id': tx_id
    })
    return minted

# -----------------------------------------------------------------------------
# Rounds
# -----------------------------------------------------------------------------

@export
def start_round():
    player = ctx.caller
    require_joined(player)

    previous = rounds[player]
    assert previous is None or not previous['active'], 'RoundAlreadyActive: resolve the current round first'

    fhe = fhe_executor()
    seed_handle = random_source().random_euint32()
    dice = fhe.add(
        lhs=fhe.rem(lhs=seed_handle, modulus=6),
        rhs=fhe.encrypt(value=1, fhe_type='euint32')
    )
    guess = fhe.encrypt(value=0, fhe_type='euint32')
    outcome = fhe.encrypt(value=0, fhe_type='euint32')

    # Ledger only: the player must not see the dice before guessing.
    allow_all(fhe, [dice, guess, outcome], ctx.this)

    round_id = 1 if previous is None else previous['round_id'] + 1
    tx_id = next_tx()
    rounds[player] = {
        'dice': dice,
        'guess': guess,
        'outcome': outcome,
        'active': True,
        'history': False if previous is None else previous['history'],
        'round_id': round_id,
        'started_at': tx_id,
        'resolved_at': 0
    }

    RoundStartedEvent({
        'player': player,
        'round_id': round_id,
        'tx_id': tx_id
    })

@export
def submit_guess(guess_handle: str, proof: str):
    player = ctx.caller
    account = require_joined(player)

    current = rounds[player]
    assert current is not None and current['active'], 'RoundNotActive: start a round first'

    fhe = fhe_executor()
    guess = fhe.from_external(handle=guess_handle, proof=proof, user=player)

    is_big = fhe.gt(lhs=current['dice'], rhs=fhe.encrypt(value=3, fhe_type='euint32'))
    category = fhe.select(
        condition=is_big,
        if_true=fhe.encrypt(value=BIG, fhe_type='euint32'),
        if_false=fhe.encrypt(value=SMALL, fhe_type='euint32')
    )

    matches = fhe.eq(lhs=guess, rhs=category)
    outcome = fhe.select(
        condition=matches,
        if_true=fhe.encrypt(value=1, fhe_type='euint32'),
        if_false=fhe.encrypt(value=0, fhe_type='euint32')
    )

    reward = fhe.mul(
        lhs=fhe.cast(handle=outcome, fhe_type='euint64'),
        rhs=fhe.encrypt(value=metadata['round_reward'], fhe_type='euint64')
    )
    balance = fhe.add(lhs=account['balance'], rhs=reward)

    allow_all(fhe, [balance, guess, outcome], ctx.this)
    allow_all(fhe, [current['dice'], guess, outcome, balance], player)

    tx_id = next_tx()
    players[player] = {
        'joined': True,
        'balance': balance,
        'deposits': account['deposits'],
        'joined_at': account['joined_at']
    }
    rounds[player] = {
        'dice': current['dice'],
        'guess': guess,
        'outcome': outcome,
        'active': False,
        'history': True,
        'round_id': current['round_id'],
        'started_at': current['started_at'],
        'resolved_at': tx_id
    }

    GuessResolvedEvent({
        'player': player,
        'round_id': current['round_id'],
        'tx_id': tx_id
    })
