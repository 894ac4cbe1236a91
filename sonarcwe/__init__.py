"""SonarCWE: CWE classification and statistics for SonarQube Cloud issues."""

__version__ = "0.1.0"
