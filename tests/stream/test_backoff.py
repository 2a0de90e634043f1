from friend_club.stream.backoff import Backoff


def test_delays_double_from_one_second_and_cap_at_thirty():
    backoff = Backoff(base=1.0, cap=30.0)

    delays_ms = [int(backoff.next_delay() * 1000) for _ in range(8)]

    assert delays_ms == [1000, 2000, 4000, 8000, 16000, 30000, 30000, 30000]


def test_reset_returns_to_base_delay():
    backoff = Backoff(base=1.0, cap=30.0)
    for _ in range(4):
        backoff.next_delay()

    backoff.reset()

    assert backoff.attempts == 0
    assert backoff.next_delay() == 1.0
    assert backoff.next_delay() == 2.0


def test_defaults_come_from_config():
    backoff = Backoff()
    assert backoff.base == 1.0
    assert backoff.cap == 30.0


def test_long_outage_stays_capped():
    backoff = Backoff(base=1.0, cap=30.0, attempts=5000)
    assert backoff.next_delay() == 30.0
