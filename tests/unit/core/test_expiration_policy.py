import math
import random

import pytest

from xfcache.core.expiration_policy import IMMEDIATE_EXPIRATION, ExpirationPolicy, validate_beta
from xfcache.domain.errors import InvalidBetaError
from xfcache.domain.models.entry import MISS, Entry, Hit

NOW = 10_000.0


def live_entry(remaining=1.0, compute_duration=0.001, created_ago=1.0):
    return Entry(
        value="v",
        created_at=NOW - created_ago,
        expires_at=NOW + remaining,
        compute_duration=compute_duration,
    )


@pytest.fixture
def policy():
    return ExpirationPolicy(rng=random.Random(7))


@pytest.mark.parametrize("lookup", [None, MISS])
def test_absent_entry_is_always_a_miss(policy, lookup):
    assert policy.should_treat_as_miss(lookup, NOW, beta=0)


def test_hard_expired_entry_is_a_miss_for_any_beta(policy):
    expired = Entry(value="v", created_at=NOW - 10, expires_at=NOW, compute_duration=1.0)
    for beta in (0, 1.0, 100.0, IMMEDIATE_EXPIRATION):
        assert policy.should_treat_as_miss(expired, NOW, beta)


def test_non_positive_window_is_a_miss(policy):
    broken = Entry(value="v", created_at=NOW + 5, expires_at=NOW + 5)
    assert policy.should_treat_as_miss(broken, NOW, beta=0)


def test_never_expiring_entry_is_always_a_hit(policy):
    forever = Entry(value="v", created_at=NOW - 1, expires_at=None, compute_duration=5.0)
    for beta in (0, 1.0, 1e9, IMMEDIATE_EXPIRATION):
        assert not policy.should_treat_as_miss(Hit(forever), NOW, beta)


def test_beta_zero_never_recomputes_early(scripted_rng):
    rng = scripted_rng(0.999999)  # sample close to 0 -> huge |ln|
    policy = ExpirationPolicy(rng=rng)
    entry = live_entry(remaining=0.001, compute_duration=1000.0)
    assert not policy.should_treat_as_miss(entry, NOW, beta=0)
    assert rng.calls == 0


def test_infinite_beta_always_recomputes(scripted_rng):
    rng = scripted_rng(0.5)
    policy = ExpirationPolicy(rng=rng)
    entry = live_entry(remaining=3600.0, compute_duration=0.0)
    assert policy.should_treat_as_miss(entry, NOW, beta=IMMEDIATE_EXPIRATION)
    assert rng.calls == 0


def test_unknown_compute_duration_never_recomputes_early(policy):
    entry = live_entry(remaining=0.0001, compute_duration=0.0)
    assert not policy.should_treat_as_miss(entry, NOW, beta=1e6)


def test_formula_threshold(scripted_rng):
    """miss iff now + compute_duration * beta * |ln(sample)| >= expires_at."""
    # random() = 1 - e^-1 -> sample = e^-1 -> |ln(sample)| = 1
    rng = scripted_rng(1 - math.exp(-1))
    policy = ExpirationPolicy(rng=rng)
    entry = live_entry(remaining=2.0, compute_duration=0.5)

    assert not policy.should_treat_as_miss(entry, NOW, beta=3.9)   # reach 1.95s < 2s
    assert policy.should_treat_as_miss(entry, NOW, beta=4.1)       # reach 2.05s
    assert policy.should_treat_as_miss(entry, NOW, beta=10.0)


def test_sample_is_never_zero(scripted_rng):
    """random() == 0.0 maps to sample 1.0, ln(1) == 0, no domain error."""
    policy = ExpirationPolicy(rng=scripted_rng(0.0))
    assert not policy.should_treat_as_miss(live_entry(remaining=1.0, compute_duration=1.0), NOW, beta=1.0)


def test_fresh_sample_drawn_on_every_call(scripted_rng):
    rng = scripted_rng(0.5)
    policy = ExpirationPolicy(rng=rng)
    entry = live_entry(remaining=100.0, compute_duration=0.001)
    for _ in range(5):
        policy.should_treat_as_miss(entry, NOW, beta=1.0)
    assert rng.calls == 5


def test_default_beta_used_when_omitted(scripted_rng):
    rng = scripted_rng(1 - math.exp(-1))
    entry = live_entry(remaining=1.9, compute_duration=1.0)
    assert not ExpirationPolicy(rng=rng).should_treat_as_miss(entry, NOW)           # default 1.0 reaches 1s
    assert ExpirationPolicy(default_beta=2.0, rng=rng).should_treat_as_miss(entry, NOW)


def test_larger_beta_increases_early_miss_rate():
    entry = live_entry(remaining=1.0, compute_duration=0.01)
    rates = []
    for beta in (1.0, 50.0, 200.0):
        policy = ExpirationPolicy(rng=random.Random(1234))
        misses = sum(policy.should_treat_as_miss(entry, NOW, beta) for _ in range(2000))
        rates.append(misses / 2000)
    assert rates[0] < rates[1] < rates[2]
    # P(miss) = exp(-remaining / (compute_duration * beta))
    assert rates[2] == pytest.approx(math.exp(-1.0 / 2.0), abs=0.05)


def test_miss_probability_grows_as_expiry_approaches():
    rates = []
    for remaining in (5.0, 1.0, 0.1):
        policy = ExpirationPolicy(rng=random.Random(99))
        entry = live_entry(remaining=remaining, compute_duration=0.01)
        rates.append(sum(policy.should_treat_as_miss(entry, NOW, 100.0) for _ in range(2000)))
    assert rates[0] < rates[1] < rates[2]


@pytest.mark.parametrize("bad", [-0.1, float("nan"), "1", None, True])
def test_invalid_beta_rejected(bad):
    with pytest.raises(InvalidBetaError):
        validate_beta(bad)


def test_invalid_beta_rejected_at_decision_time(policy):
    with pytest.raises(InvalidBetaError):
        policy.should_treat_as_miss(live_entry(), NOW, beta=-1)


@pytest.mark.parametrize("lookup", [
    MISS,
    Hit(Entry(value="v", created_at=NOW - 10, expires_at=NOW - 1)),
    Hit(Entry(value="v", created_at=NOW - 10, expires_at=None)),
])
def test_invalid_beta_rejected_whatever_the_entry_state(policy, lookup):
    with pytest.raises(InvalidBetaError):
        policy.should_treat_as_miss(lookup, NOW, beta=-1)
