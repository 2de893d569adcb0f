"""Domain layer: value objects, entities, query model, governor and errors."""
