"""Pytest configuration for path tracer tests.

Taichi is initialized once per session; every test starts from empty
geometry, materials, emitters and render target, with default integrator
settings.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Repeated ti.init() calls invalidate fields already allocated by imported
    modules, so modules holding fields are imported only inside tests.
    """
    ti.init(arch=ti.cpu, random_seed=42, fast_math=False)
    yield


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Reset global scene and integrator state around each test."""
    from mispath.config import IntegratorConfig
    from mispath.core.accumulator import clear_render_target
    from mispath.core.integrator import configure_integrator
    from mispath.materials.material import clear_materials
    from mispath.scene.emitters import clear_emitters
    from mispath.scene.intersection import clear_scene

    def _clear_all():
        clear_scene()
        clear_materials()
        clear_emitters()
        clear_render_target()
        configure_integrator(IntegratorConfig())

    _clear_all()
    yield
    _clear_all()
