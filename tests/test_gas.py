"""
Tests for the ideal-gas atmosphere model.
"""
import pytest

from models import GAS_CONSTANT, IdealGasMixture, PipeNet, TileAtmosphere, moles_for


def test_pressure_from_moles():
    mix = IdealGasMixture(moles=1.0, volume=GAS_CONSTANT * 300.0, temperature=300.0)
    assert mix.pressure == pytest.approx(1.0)


def test_zero_volume_has_no_pressure():
    assert IdealGasMixture(moles=5.0, volume=0.0).pressure == 0.0


def test_invalid_mixture_rejected():
    with pytest.raises(ValueError):
        IdealGasMixture(moles=1.0, volume=1.0, temperature=0.0)
    with pytest.raises(ValueError):
        IdealGasMixture(moles=1.0, volume=-1.0)


def test_remove_is_clamped():
    mix = IdealGasMixture.at_pressure(100.0, 10.0, 300.0)
    taken = mix.remove(mix.moles * 2)
    assert mix.moles == 0.0
    assert taken.moles == pytest.approx(moles_for(100.0, 10.0, 300.0))
    assert taken.temperature == 300.0


def test_merge_mixes_temperature_by_moles():
    cold = IdealGasMixture(moles=1.0, volume=10.0, temperature=200.0)
    cold.merge(IdealGasMixture(moles=3.0, volume=0.0, temperature=400.0))
    assert cold.moles == 4.0
    assert cold.temperature == pytest.approx(350.0)


def test_pipe_net_shares_air():
    net = PipeNet(300.0)
    a = net.add_node("a", 100.0)
    b = net.add_node("b", 100.0)
    net.fill(50.0)
    assert a.air is b.air
    assert net.air.volume == 200.0
    assert a.air.pressure == pytest.approx(50.0)
    assert [n.name for n in net.nodes] == ["a", "b"]


def test_sealed_tile_has_no_mixture():
    atmos = TileAtmosphere()
    mix = IdealGasMixture.at_pressure(101.325, 2500.0)
    atmos.add_tile("Bridge", mix)
    assert atmos.get_containing_mixture("Bridge") is mix
    atmos.seal("Bridge")
    assert atmos.is_sealed("Bridge")
    assert atmos.get_containing_mixture("Bridge") is None
    atmos.unseal("Bridge")
    assert atmos.get_containing_mixture("Bridge") is mix
    assert atmos.get_containing_mixture("Nowhere") is None
