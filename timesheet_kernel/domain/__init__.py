"""Pure functional core: value types, predicates, validators, state machines."""
