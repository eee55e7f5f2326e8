# This file marks the services package for the API's business operations.
# It exists so routers depend on service classes instead of driving the persistence context directly.
# Each service method is one unit of work on a request-scoped context.
