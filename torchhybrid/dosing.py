from ._impl.dosing import decay, add_dose, dosing_event, reference_trajectory, DosingModel
