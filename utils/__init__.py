# Utils package - logging, configuration, security and access control helpers
