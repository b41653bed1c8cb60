# Command Line Interface
