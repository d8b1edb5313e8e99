from hybrid_backtest.backtest.circuit import MLCircuitState


class TestMLCircuitState:
    def test_trip_and_reset(self):
        state = MLCircuitState()
        assert not state.is_tripped

        state.trip(now=100.0)
        assert state.is_tripped
        assert state.last_check_time == 100.0

        state.reset(now=250.0)
        assert not state.is_tripped
        assert state.last_check_time == 250.0

    def test_instances_are_independent(self):
        a, b = MLCircuitState(), MLCircuitState()
        a.trip()
        assert not b.is_tripped
        assert a.last_check_time > 0
