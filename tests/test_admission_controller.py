import threading

from schedcord.ratelimit.admission_controller import AdmissionController, AdmissionResult


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_controller(clock: FakeClock, **kwargs) -> AdmissionController:
    return AdmissionController(clock=clock, **kwargs)


def test_window_denies_exactly_the_extra_call() -> None:
    clock = FakeClock()
    controller = make_controller(clock)

    results = []
    for _ in range(6):
        results.append(controller.check_window("user", 10.0, 5))
        clock.advance(1.0)

    assert [result.allowed for result in results] == [True] * 5 + [False]
    assert results[-1].seconds_remaining == 5


def test_window_allows_again_once_first_call_leaves_window() -> None:
    clock = FakeClock()
    controller = make_controller(clock)
    for _ in range(3):
        assert controller.check_window("user", 10.0, 3)

    assert not controller.check_window("user", 10.0, 3)

    clock.advance(10.0)
    assert controller.check_window("user", 10.0, 3)


def test_windows_are_per_actor() -> None:
    controller = make_controller(FakeClock())
    assert controller.check_window("a", 10.0, 1)

    assert not controller.check_window("a", 10.0, 1)
    assert controller.check_window("b", 10.0, 1)


def test_cooldown_reports_remaining_seconds() -> None:
    clock = FakeClock()
    controller = make_controller(clock)

    assert controller.check_cooldown("user", "refresh", 5.0)
    clock.advance(1.5)
    denied = controller.check_cooldown("user", "refresh", 5.0)

    assert denied == AdmissionResult(False, 4)
    assert not denied
    assert controller.check_cooldown("user", "other", 5.0)

    clock.advance(3.5)
    assert controller.check_cooldown("user", "refresh", 5.0)


def test_remaining_seconds_is_at_least_one() -> None:
    clock = FakeClock()
    controller = make_controller(clock)
    controller.check_cooldown("user", "x", 1.0)

    clock.advance(0.999)

    assert controller.check_cooldown("user", "x", 1.0).seconds_remaining == 1


def test_cooldown_consults_window_first_and_does_not_charge_denials() -> None:
    clock = FakeClock()
    controller = make_controller(clock, window=60.0, max_per_window=2)

    assert controller.check_command("user", "schedule")
    assert controller.check_interaction("user", "select")
    blocked = controller.check_command("user", "refresh")

    assert not blocked
    assert blocked.seconds_remaining == 60
    assert controller.stats()["total_requests"] == 2

    clock.advance(60.0)
    assert controller.check_command("user", "refresh")


def test_convenience_wrappers_use_configured_cooldowns() -> None:
    clock = FakeClock()
    controller = make_controller(clock, command_cooldown=3.0, interaction_cooldown=1.0)

    assert controller.check_command("user", "schedule")
    assert controller.check_interaction("user", "button")
    clock.advance(1.0)

    assert controller.check_interaction("user", "button")
    assert not controller.check_command("user", "schedule")


def test_clear_forgets_actor() -> None:
    controller = make_controller(FakeClock(), max_per_window=1)
    controller.check_command("user", "schedule")

    controller.clear("user")

    assert controller.check_command("user", "schedule")


def test_sweep_drops_stale_entries() -> None:
    clock = FakeClock()
    controller = make_controller(clock, window=10.0)
    controller.check_cooldown("a", "x", 1.0)
    controller.check_cooldown("b", "y", 100.0)

    clock.advance(20.0)
    controller.sweep()

    stats = controller.stats()
    assert stats["cooldowns"] == 1
    assert stats["tracked_users"] == 0
    assert not controller.check_cooldown("b", "y", 100.0)


def test_concurrent_checks_never_exceed_limit() -> None:
    controller = AdmissionController(window=60.0, max_per_window=50)
    allowed = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(20):
            result = controller.check_window("shared", 60.0, 50)
            with lock:
                allowed.append(result.allowed)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert allowed.count(True) == 50
    assert len(allowed) == 160


def test_sweep_keeps_hits_inside_the_longest_window_used() -> None:
    clock = FakeClock()
    controller = make_controller(clock, window=60.0)
    assert controller.check_window("user", 300.0, 1)

    clock.advance(120.0)
    controller.sweep()

    assert controller.stats()["total_requests"] == 1
    assert not controller.check_window("user", 300.0, 1)
