"Command handlers invoked from the CLI."
