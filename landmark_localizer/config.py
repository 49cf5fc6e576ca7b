"""
Configuration settings for the landmark localization pipeline.
Centralized configuration for all modules.
"""


class PipelineConfig:
    """Configuration for the entire localization pipeline."""

    # Bright spot extraction (band-pass + pixel clustering)
    POINT_EXTRACTION = {
        'THRESHOLD': 20,
        'TIGHT_FILTER_SIZE': 3,
        'WIDE_FILTER_SIZE': 11,
        'PIXEL_CLUSTER_RADIUS': 3,
        'MIN_PIXELS': 1,
        'MAX_PIXELS': 1000
    }

    # Grouping of marker points into landmark candidates
    CLUSTERING = {
        'MAX_RADIUS': 40,
        'MIN_POINTS': 5,
        'MAX_POINTS': 9
    }

    # Corner triple search
    CORNER_SEARCH = {
        'MAX_HYPOTHESES': 10,
        'CUTOFF': 1.0,
        'W_TRIANGLE_LENGTH': 1.0,
        'W_PROJECTED_SECANT': 1.0,
        'W_SECANT_LENGTH_DIFF': 1.0,
        'HYPOTENUSE_TOLERANCE': 1.2,
        'POINT_INSIDE_TOLERANCE': 0.2
    }

    # Identity decoding
    ID_DECODING = {
        'BRIGHTNESS_THRESHOLD': 128,
        'SAMPLE_FILTERED_IMAGE': False
    }

    # Pose estimation
    POSE_ESTIMATION = {
        'ESTIMATE_2D_POSE': False,
        'ROBUST_LOSS_SCALE': 3.0,
        'MIN_CAMERA_CLEARANCE': 1.0,
        'MAX_REPROJECTION_ERROR': 5.0,
        'MAX_FUNCTION_EVALUATIONS': 200,
        'FTOL': 1e-10,
        'XTOL': 1e-10,
        'GTOL': 1e-10
    }

    # Landmark grid spacing used when a map entry has no explicit points
    LANDMARK_MAP = {
        'GRID_SPACING': 0.08
    }

    # Visualization Colors (BGR)
    VIZ_COLORS = {
        'BG_DIM': 0.4,
        'POINT': (0, 255, 255),
        'CLUSTER': (255, 128, 0),
        'CORNER': (0, 0, 255),
        'APEX': (0, 255, 0),
        'ID_POINT': (255, 0, 255),
        'FRAME': (200, 200, 200),
        'LABEL': (255, 255, 255)
    }
