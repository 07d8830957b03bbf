"""DTF Print Optimizer: print-ready graphics for direct-to-film transfers.

This package turns generated artwork into PNG print files tuned for the
garment color the film is pressed onto.

Architecture layers (strict one-way dependency):
    scripts/ → src/dtf_engine/ → src/utils/

Key invariants:
    - Pixel buffers are RGBA uint8, shape (H, W, 4), dimensions fixed end-to-end
    - Stages never mutate their input buffer
    - Any stage failure aborts the invocation; no partial print files
    - YAML-only configs (configs/dtf_optimizer_v1.yaml)
"""

__version__ = "1.0.0"
