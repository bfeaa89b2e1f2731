from .animal_model import (
    PriorSpec,
    ModelConfig,
    AnimalModelData,
    prepare_model_data,
    build_animal_model,
    fit_animal_model,
)

__all__ = [
    "PriorSpec",
    "ModelConfig",
    "AnimalModelData",
    "prepare_model_data",
    "build_animal_model",
    "fit_animal_model",
]
