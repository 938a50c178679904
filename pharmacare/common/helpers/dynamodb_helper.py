# Built-in imports
from typing import Any, Dict, Optional

# External imports
import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

# Own imports
from pharmacare.common.logger import custom_logger

logger = custom_logger()


class DynamoDBHelper:
    """Custom DynamoDB Helper for simplifying CRUD operations."""

    def __init__(self, table_name: str, endpoint_url: Optional[str] = None) -> None:
        """
        :param table_name (str): Name of the DynamoDB table to connect with.
        :param endpoint_url (Optional(str)): Endpoint for DynamoDB (only for local tests).
        """
        self.table_name = table_name
        self.dynamodb_resource = boto3.resource("dynamodb", endpoint_url=endpoint_url)
        self.table = self.dynamodb_resource.Table(self.table_name)

    def get_item_by_pk_and_sk(
        self, partition_key: str, sort_key: str
    ) -> Dict[str, Any]:
        """
        Method to get a single DynamoDB item from the primary key (pk+sk).
        :param partition_key (str): partition key value.
        :param sort_key (str): sort key value.
        """
        logger.debug(
            "Starting get_item_by_pk_and_sk",
            extra={"pk": partition_key, "sk": sort_key},
        )

        try:
            response = self.table.get_item(Key={"PK": partition_key, "SK": sort_key})
            return response["Item"] if "Item" in response else {}

        except ClientError as error:
            logger.error(
                f"get_item operation failed for: "
                f"table_name: {self.table_name}."
                f"pk: {partition_key}."
                f"sk: {sort_key}."
                f"error: {error}."
            )
            raise error

    def put_item(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Method to add (or fully replace) a single DynamoDB item.
        :param data (dict): Item to store, including its "PK" and "SK".
        """
        logger.debug("Starting put_item", extra={"pk": data.get("PK")})

        try:
            return self.table.put_item(Item=data)

        except ClientError as error:
            logger.error(
                f"put_item operation failed for: "
                f"table_name: {self.table_name}."
                f"pk: {data.get('PK')}."
                f"error: {error}."
            )
            raise error

    def count_items_by_pk_prefix(self, partition_key_prefix: str) -> int:
        """
        Method to count the items whose partition key starts with a prefix.
        :param partition_key_prefix (str): prefix of the partition key values.
        """
        filter_expression = Attr("PK").begins_with(partition_key_prefix)
        total = 0
        try:
            # Initial scan before pagination
            response = self.table.scan(
                FilterExpression=filter_expression, Select="COUNT"
            )
            total += response.get("Count", 0)

            # Pagination loop for possible following scans
            while "LastEvaluatedKey" in response:
                response = self.table.scan(
                    FilterExpression=filter_expression,
                    Select="COUNT",
                    ExclusiveStartKey=response["LastEvaluatedKey"],
                )
                total += response.get("Count", 0)

            return total
        except ClientError as error:
            logger.error(
                f"scan operation failed for: "
                f"table_name: {self.table_name}."
                f"pk_prefix: {partition_key_prefix}."
                f"error: {error}."
            )
            raise error
