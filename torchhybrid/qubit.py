from ._impl.qubit import bloch_sphere_states, infidelity, fidelity, QubitControl, PHYSICAL_BLOCKS
