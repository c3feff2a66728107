# MaxVue processing - visual sources, filter-only fallback and the per-element coordinator.
# Import submodules directly: from maxvue.processing.coordinator import ProcessingCoordinator
