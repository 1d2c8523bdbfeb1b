import numpy as np
import pytest

from pulse_control.trajectory import NamedTrajectory


@pytest.fixture
def traj():
    T = 5
    return NamedTrajectory(
        {
            'a': np.arange(2 * T, dtype=float).reshape(2, T),
            'dt': np.full(T, 0.5),
        },
        timestep='dt',
        controls=['a'],
        bounds={'a': 2.0, 'dt': (0.1, 1.0)},
        initial={'a': 0.0},
        final={'a': [1.0, -1.0]},
    )


def test_accessors(traj):
    assert traj.T == 5
    assert traj.names == ['a', 'dt']
    assert traj.dims == {'a': 2, 'dt': 1}
    np.testing.assert_array_equal(traj['a'], traj.a)
    assert 'a' in traj and 'U' not in traj
    assert traj.free_time
    np.testing.assert_allclose(traj.times, [0.0, 0.5, 1.0, 1.5, 2.0])
    assert traj.duration == pytest.approx(2.0)
    assert traj.data.shape == (3, 5)


def test_unknown_component(traj):
    with pytest.raises(KeyError):
        traj['missing']
    with pytest.raises(AttributeError):
        traj.missing


def test_bounds_and_fixed_values(traj):
    lo, hi = traj.bounds['a']
    np.testing.assert_array_equal(lo, [-2.0, -2.0])
    np.testing.assert_array_equal(hi, [2.0, 2.0])
    np.testing.assert_array_equal(traj.bounds['dt'][0], [0.1])
    np.testing.assert_array_equal(traj.initial['a'], [0.0, 0.0])
    np.testing.assert_array_equal(traj.final['a'], [1.0, -1.0])
    with pytest.raises(ValueError):
        traj.set_bound('a', (1.0, -1.0))


def test_vec_and_update(traj):
    z = traj.vec(['a', 'dt'])
    assert z.shape == (15,)
    # component-major, row-major within a component
    np.testing.assert_array_equal(z[:10], np.arange(10))
    traj.update(['a'], -np.arange(10, dtype=float))
    assert traj['a'][1, 0] == -5.0
    with pytest.raises(ValueError):
        traj.update(['a'], np.zeros(3))


def test_setitem_checks_shape(traj):
    traj['dt'] = np.full(5, 0.25)
    assert traj.duration == pytest.approx(1.0)
    with pytest.raises(ValueError):
        traj['a'] = np.zeros((2, 4))


def test_add_component_and_fixed_timestep():
    traj = NamedTrajectory({'a': np.zeros((1, 4))}, timestep=0.2)
    assert not traj.free_time
    np.testing.assert_allclose(traj.timesteps, 0.2)
    traj.add_component('da', np.ones((1, 4)), bound=3.0)
    assert traj.dims['da'] == 1
    with pytest.raises(ValueError):
        traj.add_component('bad', np.ones((1, 3)))


def test_construction_errors():
    with pytest.raises(ValueError):
        NamedTrajectory({'a': np.zeros((1, 4)), 'b': np.zeros((1, 5))}, timestep=0.1)
    with pytest.raises(ValueError):
        NamedTrajectory({'a': np.zeros((1, 4))}, timestep='dt')
    with pytest.raises(ValueError):
        NamedTrajectory({'a': np.zeros((1, 4)), 'dt': np.zeros(4)}, timestep='dt')
    with pytest.raises(KeyError):
        NamedTrajectory({'a': np.zeros((1, 4))}, timestep=0.1, controls=['u'])


def test_copy_is_independent(traj):
    other = traj.copy()
    other['a'] = np.zeros((2, 5))
    assert traj['a'][0, 1] == 1.0
    assert other.bounds.keys() == traj.bounds.keys()


def test_save_and_load(traj, tmp_path):
    path = traj.save(str(tmp_path / "traj"))
    assert path.endswith('.npz')
    loaded = NamedTrajectory.load(path)
    assert loaded.names == traj.names
    np.testing.assert_allclose(loaded['a'], traj['a'])
    assert loaded.timestep == 'dt'
    assert loaded.controls == ['a']
    np.testing.assert_array_equal(loaded.final['a'], [1.0, -1.0])
