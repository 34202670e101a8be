"""AWS status enumerations shared by reconcilers."""
