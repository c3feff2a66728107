# MaxVue - adaptive presbyopia enhancement pipeline
# Corrects near-vision blur on images and video frames, adapting strength to the content viewed
# Submodules: correction (diopter model), analysis (content analyzer), rendering (shader + CPU fallback), processing (coordinator)
# Usage: from maxvue.processing.coordinator import ProcessingCoordinator
# This __init__.py marks directory as Python package - import submodules directly

__version__ = "0.1.0"
