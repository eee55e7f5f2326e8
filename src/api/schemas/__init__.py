# This file marks the schemas package for API request and response models.
# It exists so movie, health, and error contracts can be imported from one namespace.
