"""HTTP surface for the process tracker."""
