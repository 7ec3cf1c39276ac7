"""Taichi path tracer with explicit light sampling and multiple importance sampling.

This package provides a progressive, one-bounce-per-tick path tracer with:
- Next-event estimation over emissive triangles
- Multiple importance sampling with the power heuristic
- Russian roulette termination for unbounded path lengths
- Diffuse, mirror, rough conductor, plastic and dielectric materials

Subpackages:
    core: Vector helpers, sample source, accumulator, integrator and tick driver
    geometry: Ray/triangle intersection and mesh builders
    materials: Material records, microfacet helpers and BSDF dispatch
    scene: Triangle storage, emitter table and scene management
    camera: Camera models with ray generation
    preview: Tone mapping and image export utilities
"""

__version__ = "0.1.0"
