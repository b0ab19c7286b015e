_APERTURE = [-60.0, -55.0, 60.0, 55.0]
_SETUP = {"id": "CBCT", "technique": "STATIC", "setup": True, "gantry_angles": [0]}

SAMPLE_PATIENTS = {
    "BATCH001": {
        "C1": {
            "IMRT_7F": {
                "objectives": ["PTV min 60Gy", "Rectum V50<20%"],
                "beams": [_SETUP] + [
                    {"id": f"F{i + 1}", "technique": "STATIC", "gantry_angles": [angle]}
                    for i, angle in enumerate([0, 51, 103, 154, 206, 257, 309])
                ],
            },
            "VMAT_2A": {
                "objectives": ["PTV min 60Gy", "Bladder mean<35Gy"],
                "beams": [
                    _SETUP,
                    {"id": "CW", "technique": "ARC", "gantry_angles": [181, 241, 301, 1, 61, 121, 179],
                     "aperture": _APERTURE},
                    {"id": "CCW", "technique": "ARC", "gantry_angles": [179, 121, 61, 1, 301, 241, 181],
                     "aperture": _APERTURE},
                ],
            },
        },
    },
    "BATCH002": {
        "C1": {
            "VMAT_DYN": {
                "objectives": ["PTV min 50Gy"],
                "has_dose": True,
                "beams": [
                    {"id": "ARC1", "technique": "ARC", "gantry_angles": [10, 10, 170, 170, 350],
                     "aperture": _APERTURE, "mu": 310.5},
                ],
            },
            "MIXED": {
                "objectives": ["PTV min 50Gy"],
                "beams": [
                    {"id": "ARC1", "technique": "ARC", "gantry_angles": [0, 120, 240], "aperture": _APERTURE},
                    {"id": "F1", "technique": "STATIC", "gantry_angles": [90]},
                ],
            },
            "APPROVED": {
                "approval": "PlanningApproved",
                "objectives": ["PTV min 50Gy"],
                "beams": [{"id": "F1", "technique": "STATIC", "gantry_angles": [0]}],
            },
            "NO_OBJ": {
                "beams": [{"id": "F1", "technique": "STATIC", "gantry_angles": [0]}],
            },
        },
    },
}
